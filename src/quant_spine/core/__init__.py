"""Core primitives: structured logging, error hierarchy, settings."""

from quant_spine.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    InvalidConfigError,
    OrchestrationError,
    QuantSpineError,
    ScriptTimeoutError,
    StorageError,
    WorkflowError,
    WorkspaceError,
    categorize_error,
)
from quant_spine.core.logging import LogContext, configure_logging, get_logger
from quant_spine.core.settings import QuantSpineSettings, clear_settings_cache, get_settings

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionError",
    "InvalidConfigError",
    "OrchestrationError",
    "QuantSpineError",
    "ScriptTimeoutError",
    "StorageError",
    "WorkflowError",
    "WorkspaceError",
    "categorize_error",
    "LogContext",
    "configure_logging",
    "get_logger",
    "QuantSpineSettings",
    "clear_settings_cache",
    "get_settings",
]
