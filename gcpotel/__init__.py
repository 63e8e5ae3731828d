"""Cloud Trace header propagation, span conversion and export, monitored-resource mapping and log-entry mapping for OpenTelemetry data."""

__version__ = "0.35.2"