"""Orchestration exceptions: structured error hierarchy.

All orchestration exceptions inherit from ``quant_spine.core.errors.OrchestrationError``
so that callers can catch the entire family with a single ``except`` clause.

Hierarchy::

    OrchestrationError  (from quant_spine.core.errors)
      ├── TemplateError                ── base for template problems
            ├── TemplateValidationError  ── duplicate/empty names, bad fields
            ├── DependencyError          ── unknown or self dependency
            ├── CycleDetectedError       ── dependency graph has a cycle
            └── TemplateNotFoundError    ── name not in the registry
      └── WorkflowError  (from quant_spine.core.errors)
            └── StepOutputConflictError  ── a step output key written twice
"""

from quant_spine.core.errors import OrchestrationError, WorkflowError


class TemplateError(OrchestrationError):
    """Base exception for workflow template errors."""

    pass


class TemplateValidationError(TemplateError):
    """Raised when a template definition is malformed."""

    def __init__(self, message: str, template_name: str | None = None):
        self.template_name = template_name
        super().__init__(message)


class DependencyError(TemplateError):
    """Raised when step dependencies are invalid."""

    def __init__(self, step_name: str, missing_deps: list[str]):
        self.step_name = step_name
        self.missing_deps = missing_deps
        deps_str = ", ".join(missing_deps)
        super().__init__(f"Step '{step_name}' depends on unknown steps: {deps_str}")


class CycleDetectedError(TemplateError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        cycle_str = " -> ".join(cycle)
        super().__init__(f"Cycle detected in dependency graph: {cycle_str}")


class TemplateNotFoundError(TemplateError):
    """Raised when a requested template is not registered."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.template_name = name
        listing = ", ".join(available) if available else "(none)"
        super().__init__(f"Workflow template '{name}' not found. Available: {listing}")


class StepOutputConflictError(WorkflowError):
    """Raised when a step output is recorded twice in one run."""

    def __init__(self, step_name: str):
        self.step_name = step_name
        super().__init__(f"Output for step '{step_name}' already recorded in this run")
