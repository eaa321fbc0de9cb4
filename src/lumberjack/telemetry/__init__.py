"""Telemetry pipeline: buffering, span conversion and exporters."""
