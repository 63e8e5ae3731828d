import logging

import pytest

from gcpotel.observability import GrpcCode, SelfObservability, status_code_to_string


@pytest.mark.parametrize(
    "code, name",
    [
        (0, "OK"),
        (1, "CANCELLED"),
        (3, "INVALID_ARGUMENT"),
        (5, "NOT_FOUND"),
        (14, "UNAVAILABLE"),
        (16, "UNAUTHENTICATED"),
    ],
)
def test_known_codes(code, name):
    assert status_code_to_string(code) == name


def test_enum_members_round_trip():
    for member in GrpcCode:
        assert status_code_to_string(member) == member.name
        assert GrpcCode[status_code_to_string(member)] is member


def test_unknown_code():
    assert status_code_to_string(42) == "CODE_42"


def test_point_counts_accumulate_per_status():
    obs = SelfObservability()
    obs.record_point_count(3, "OK")
    obs.record_point_count(4, "OK")
    obs.record_point_count(2, "NOT_FOUND")
    assert obs.point_count("OK") == 7
    assert obs.point_count("NOT_FOUND") == 2
    assert obs.point_count("INTERNAL") == 0


def test_exemplar_failures_accumulate():
    obs = SelfObservability()
    assert obs.exemplar_attachments_dropped == 0
    obs.record_exemplar_failure(2)
    obs.record_exemplar_failure(5)
    assert obs.exemplar_attachments_dropped == 7


def test_custom_logger_is_kept():
    logger = logging.getLogger("custom-test")
    obs = SelfObservability(log=logger)
    assert obs.log is logger