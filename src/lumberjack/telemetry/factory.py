# src/lumberjack/telemetry/factory.py
"""Exporter discovery and construction.

Built-in exporters (http, console, mock) and any extra plugin objects are
registered with a pluggy PluginManager; their ``lumberjack_get_exporters``
hooks build a name -> class registry that ``create_exporter`` looks up.

Usage:
    exporter = create_exporter("http", {"project_name": "shop", "api_key": key})
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy
import structlog

from lumberjack.contracts.errors import ExporterConfigurationError
from lumberjack.telemetry.exporters import BuiltinExportersPlugin
from lumberjack.telemetry.hookspecs import PROJECT_NAME, LumberjackExporterSpec
from lumberjack.telemetry.protocols import ExporterProtocol

logger = structlog.get_logger(__name__)


def _resolve_exporter_name(exporter_class: type[ExporterProtocol]) -> str:
    """Resolve exporter name from the class-level ``_name`` or an instance.

    Raises:
        ExporterConfigurationError: If the name is missing or not a non-empty
            string.
    """
    class_name = exporter_class.__name__
    class_dict = exporter_class.__dict__
    if "_name" in class_dict:
        hint = class_dict["_name"]
        if type(hint) is str and hint != "":
            return hint
        raise ExporterConfigurationError(
            class_name,
            f"Exporter class attribute _name must be a non-empty string, got {hint!r}",
        )

    try:
        instance = exporter_class()
    except Exception as e:
        raise ExporterConfigurationError(
            class_name,
            f"Failed to instantiate exporter class during discovery: {e}",
        ) from e

    resolved = instance.name
    if type(resolved) is not str or resolved == "":
        raise ExporterConfigurationError(
            class_name,
            f"Exporter name must be a non-empty string, got {resolved!r}",
        )
    return resolved


def discover_exporters(exporter_plugins: Iterable[Any] = ()) -> dict[str, type[ExporterProtocol]]:
    """Build the exporter registry via pluggy hooks.

    Args:
        exporter_plugins: Additional plugin objects implementing
            ``lumberjack_get_exporters``.

    Returns:
        Mapping of exporter name to exporter class.

    Raises:
        ExporterConfigurationError: If a plugin is invalid or two exporters
            share a name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(LumberjackExporterSpec)

    for plugin in [BuiltinExportersPlugin(), *exporter_plugins]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise ExporterConfigurationError(
                "exporter_plugins",
                f"Invalid exporter plugin {type(plugin).__name__}: {e}",
            ) from e

    registry: dict[str, type[ExporterProtocol]] = {}
    # pluggy calls hooks in LIFO registration order; reverse so built-ins come first
    for exporters in reversed(plugin_manager.hook.lumberjack_get_exporters()):
        if exporters is None or isinstance(exporters, str | bytes):
            raise ExporterConfigurationError(
                "exporter_plugins",
                f"lumberjack_get_exporters returned {type(exporters).__name__}; expected a list of exporter classes",
            )
        for exporter_class in exporters:
            exporter_name = _resolve_exporter_name(exporter_class)
            if exporter_name in registry:
                raise ExporterConfigurationError(
                    exporter_name,
                    f"Duplicate exporter name '{exporter_name}' discovered: "
                    f"{registry[exporter_name].__name__} and {exporter_class.__name__}",
                )
            registry[exporter_name] = exporter_class
    return registry


def create_exporter(
    name: str,
    options: dict[str, Any],
    *,
    exporter_plugins: Iterable[Any] = (),
) -> ExporterProtocol:
    """Instantiate and configure an exporter by name.

    Raises:
        ExporterConfigurationError: If the name is unknown or configure() fails.
    """
    registry = discover_exporters(exporter_plugins)
    try:
        exporter_class = registry[name]
    except KeyError:
        raise ExporterConfigurationError(
            name,
            f"Unknown exporter. Available exporters: {sorted(registry)}",
        ) from None

    exporter = exporter_class()
    exporter.configure(options)
    logger.debug("exporter_configured", exporter=name, options_keys=sorted(options))
    return exporter
