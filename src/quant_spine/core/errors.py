"""
Structured error types for quant-spine.

Every exception raised by the engine derives from ``QuantSpineError`` and
carries a category, a retryable flag and an ``ErrorContext`` with run
metadata (workflow, step, run_id, workspace).  Nothing in the engine
retries automatically; ``retryable`` is informational for callers.

Hierarchy::

    QuantSpineError
      ├── ConfigError           (CONFIG)
      │     └── InvalidConfigError
      ├── ExecutionError        (EXECUTION)
      │     └── ScriptTimeoutError
      ├── StorageError          (STORAGE)
      │     └── WorkspaceError
      └── OrchestrationError    (ORCHESTRATION)
            └── WorkflowError

Usage::

    from quant_spine.core.errors import WorkspaceError

    try:
        path.mkdir(parents=True)
    except OSError as e:
        raise WorkspaceError("Cannot create workspace", cause=e).with_context(
            workspace=str(path)
        )

Tags:
    error-handling, exception-hierarchy, error-context, quant-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"  # Missing config, invalid settings, bad templates
    EXECUTION = "EXECUTION"  # External process failures
    STORAGE = "STORAGE"  # Workspace / file system
    ORCHESTRATION = "ORCHESTRATION"  # Workflow sequencing
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"  # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        workflow: Name of the workflow template
        step: Name of the step within the workflow
        run_id: Run identifier
        workspace: Workspace path of the run
        metadata: Additional key-value pairs
    """

    workflow: str | None = None
    step: str | None = None
    run_id: str | None = None
    workspace: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["workflow", "step", "run_id", "workspace"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class QuantSpineError(Exception):
    """
    Base exception for all quant-spine errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = QuantSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(workflow="factor_research").context.workflow
        'factor_research'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> QuantSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise WorkflowError("Failed").with_context(workflow="x", step="y")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(QuantSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(QuantSpineError):
    """The external analytics process could not run or misbehaved."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False


class ScriptTimeoutError(ExecutionError):
    """A script exceeded its time bound and was killed."""

    def __init__(self, name: str, timeout_seconds: float, **kwargs: Any):
        self.script_name = name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Script '{name}' timed out after {timeout_seconds:g}s", **kwargs
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(QuantSpineError):
    """Storage-related error (disk, workspace)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class WorkspaceError(StorageError):
    """Run workspace could not be created or removed."""

    pass


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(QuantSpineError):
    """Workflow definition or sequencing error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class WorkflowError(OrchestrationError):
    """Workflow execution error."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, QuantSpineError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, (KeyError, ValueError, TypeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "QuantSpineError",
    "ConfigError",
    "InvalidConfigError",
    "ExecutionError",
    "ScriptTimeoutError",
    "StorageError",
    "WorkspaceError",
    "OrchestrationError",
    "WorkflowError",
    "categorize_error",
]
