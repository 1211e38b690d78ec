"""
Centralized settings for quant-spine.

Manifesto:
    One validated, cached settings object replaces scattered
    ``os.getenv`` lookups for interpreter path, script and workspace
    directories, and engine behaviour switches.  Values come from
    ``QUANTSPINE_*`` environment variables or a ``.env`` file.

Fields
──────
python_path                  : Interpreter used to run step scripts (also PYTHON_PATH)
script_dir                   : Where temporary script files are written (also QLIB_SCRIPT_DIR)
workspace_root               : Parent directory for per-run workspaces (also QLIB_WORKSPACE_DIR)
step_timeout_seconds         : Default bound for one step (None = unbounded)
validate_prerequisites       : Fail fast when a step's inputs are missing
continue_on_optional_failure : Keep going after a ``required=False`` step fails
artifact_dir                 : Copy step output files here before teardown
template_dir                 : Extra YAML templates loaded into the registry
log_level / log_json         : structlog configuration

Tags:
    quant-spine, configuration, settings, pydantic, environment
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuantSpineSettings(BaseSettings):
    """Engine configuration.

    All fields can be set via ``QUANTSPINE_*`` environment variables (e.g.
    ``QUANTSPINE_STEP_TIMEOUT_SECONDS=600``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUANTSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── External process ─────────────────────────────────────────
    python_path: str = Field(
        default="python3",
        validation_alias=AliasChoices("QUANTSPINE_PYTHON_PATH", "PYTHON_PATH", "python_path"),
        description="Interpreter that runs step scripts",
    )
    script_dir: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("QUANTSPINE_SCRIPT_DIR", "QLIB_SCRIPT_DIR", "script_dir"),
        description="Directory for temporary script files (system temp if unset)",
    )
    step_timeout_seconds: float | None = Field(default=3600.0, gt=0)

    # ── Workspace ────────────────────────────────────────────────
    workspace_root: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "quantspine_workspace",
        validation_alias=AliasChoices(
            "QUANTSPINE_WORKSPACE_ROOT", "QLIB_WORKSPACE_DIR", "workspace_root"
        ),
    )
    artifact_dir: Path | None = None

    # ── Engine behaviour ─────────────────────────────────────────
    validate_prerequisites: bool = True
    continue_on_optional_failure: bool = False

    # ── Templates ────────────────────────────────────────────────
    template_dir: Path | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level


_settings_cache: dict[str, QuantSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> QuantSpineSettings:
    """Load, validate, and cache the process-wide settings."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = QuantSpineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["QuantSpineSettings", "get_settings", "clear_settings_cache"]
