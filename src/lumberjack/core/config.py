# src/lumberjack/core/config.py
"""
Configuration schema and loading for the Lumberjack client.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction. Invalid settings are
reported as ConfigurationError so the host application fails at startup,
never at call time.
"""

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from lumberjack.contracts.errors import ConfigurationError
from lumberjack.core.environment import get_commit_sha

DEFAULT_ENDPOINT = "https://api.trylumberjack.com/logs/batch"
DEFAULT_GATEKEEPER_ENDPOINT = "https://api.trylumberjack.com/gatekeeper"

# Settings fields that fall back to an environment variable when unset
_ENV_FALLBACKS: dict[str, str] = {
    "api_key": "LUMBERJACK_API_KEY",
    "endpoint": "LUMBERJACK_ENDPOINT",
    "gatekeeper_endpoint": "LUMBERJACK_GATEKEEPER_ENDPOINT",
    "service_token": "LUMBERJACK_SERVICE_TOKEN",
}


class ReplaySettings(BaseModel):
    """Session replay chunking and privacy configuration.

    Example YAML:
        replay:
          flush_interval_seconds: 5
          max_events_per_chunk: 100
          mask_class: pii
          privacy_mode: strict
    """

    model_config = {"frozen": True}

    flush_interval_seconds: float = Field(default=5.0, gt=0, description="Maximum age of a replay chunk")
    max_events_per_chunk: int = Field(default=100, gt=0, description="Events per session_replay event")
    mask_all_inputs: bool = Field(default=True, description="Mask every recorded input value")
    block_class: str = Field(default="lumberjack-block", description="Nodes with this class are blanked")
    ignore_class: str = Field(default="lumberjack-ignore", description="Events touching these nodes are dropped")
    mask_class: str = Field(default="lumberjack-mask", description="Text of these nodes is masked")
    privacy_mode: Literal["standard", "strict"] = Field(
        default="standard",
        description="strict masks all recorded text",
    )


class LumberjackSettings(BaseModel):
    """Top-level client configuration.

    Example YAML:
        project_name: checkout-service
        api_key: ${LUMBERJACK_API_KEY}
        batch_size: 200
        flush_interval_seconds: 10
        error_sample_rate: 0.5
    """

    model_config = {"frozen": True}

    project_name: str = Field(description="Project identifier sent with every request")
    api_key: str | None = Field(default=None, description="Bearer token; console fallback when absent")
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="Logs endpoint; other endpoints derive from it")
    exporter: str = Field(default="http", description="Exporter name from the exporter registry")
    exporter_options: dict[str, Any] = Field(default_factory=dict, description="Extra exporter configure() options")

    batch_size: int = Field(default=100, gt=0, description="Flush when a buffer holds this many items")
    batch_age_seconds: float = Field(default=5.0, gt=0, description="Flush when the oldest batch is this old")
    flush_interval_seconds: float = Field(default=30.0, gt=0, description="Background flush interval")

    capture_logging: bool = Field(default=False, description="Forward stdlib logging records as log entries")
    capture_unhandled: bool = Field(default=True, description="Install uncaught error hooks")
    debug: bool = Field(default=False, description="Verbose client diagnostics")

    error_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0, description="Probability an error is kept")
    replay_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0, description="Probability a session records replay")
    enable_session_replay: bool = Field(default=True, description="Global replay switch")
    session_inactivity_timeout_seconds: float = Field(default=1800.0, gt=0)
    max_session_length_seconds: float = Field(default=3600.0, gt=0)
    session_storage_path: Path | None = Field(default=None, description="Best-effort session persistence file")

    gatekeeper_endpoint: str = Field(default=DEFAULT_GATEKEEPER_ENDPOINT)
    service_token: str | None = Field(default=None, description="Token for gatekeeper schema fetches")
    commit_sha: str | None = Field(default=None, description="Detected from CI/platform variables when unset")

    replay: ReplaySettings = Field(default_factory=ReplaySettings)

    @model_validator(mode="before")
    @classmethod
    def apply_environment_fallbacks(cls, data: Any) -> Any:
        """Fill unset fields from LUMBERJACK_* and CI environment variables."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for field_name, env_var in _ENV_FALLBACKS.items():
            if data.get(field_name) is None:
                value = os.environ.get(env_var, "").strip()
                if value:
                    data[field_name] = value
        if data.get("commit_sha") is None:
            data["commit_sha"] = get_commit_sha()
        return data

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("project_name must not be empty")
        return v

    @field_validator("api_key")
    @classmethod
    def blank_api_key_is_absent(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


def build_settings(**values: Any) -> LumberjackSettings:
    """Validate keyword settings, reporting failures as ConfigurationError.

    Raises:
        ConfigurationError: If any value fails validation
    """
    try:
        return LumberjackSettings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid Lumberjack configuration: {e}") from e


def load_settings(config_path: Path) -> LumberjackSettings:
    """Load settings from a YAML/TOML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (LUMBERJACK_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: LUMBERJACK_REPLAY__MASK_CLASS for nested keys.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated LumberjackSettings instance

    Raises:
        ConfigurationError: If the file is missing or fails validation
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="LUMBERJACK",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic fields are lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    if isinstance(raw_config.get("replay"), dict):
        raw_config["replay"] = {k.lower(): v for k, v in raw_config["replay"].items()}

    return build_settings(**raw_config)
