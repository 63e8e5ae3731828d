[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gcpotel"
version = "0.35.2"
description = "Cloud Trace context propagation, span conversion, resource mapping and log-entry mapping for OpenTelemetry data bound for Google Cloud"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "opentelemetry",
    "tracing",
    "logging",
    "cloud-trace",
    "observability",
    "propagation",
    "monitored-resource",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gcpotel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
