"""Test helpers shipped with the package."""

from lumberjack.testing.mock_exporter import MockExporter

__all__ = ["MockExporter"]
