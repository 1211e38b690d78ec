"""Workflow orchestration: templates, dispatch, run state and the engine.

Example::

    from quant_spine.execution import SubprocessScriptService
    from quant_spine.orchestration import WorkflowEngine, get_template

    engine = WorkflowEngine(SubprocessScriptService())
    result = engine.execute(get_template("factor_research"), {"top_k": 20})
"""

from quant_spine.orchestration.dispatcher import StepDispatcher, StepHandler, default_handlers
from quant_spine.orchestration.engine import ProgressCallback, WorkflowEngine
from quant_spine.orchestration.exceptions import (
    CycleDetectedError,
    DependencyError,
    StepOutputConflictError,
    TemplateError,
    TemplateNotFoundError,
    TemplateValidationError,
)
from quant_spine.orchestration.models import StepType, WorkflowStep, WorkflowTemplate
from quant_spine.orchestration.run_context import RunContext
from quant_spine.orchestration.step_result import StepErrorCategory, StepResult, WorkflowResult
from quant_spine.orchestration.template_yaml import TemplateSpec
from quant_spine.orchestration.templates import (
    clear_template_registry,
    get_template,
    list_builtin_templates,
    list_templates,
    load_templates_from_dir,
    register_template,
)
from quant_spine.orchestration.workspace import allocate_workspace

__all__ = [
    # Models
    "StepType",
    "WorkflowStep",
    "WorkflowTemplate",
    "TemplateSpec",
    # Results
    "StepErrorCategory",
    "StepResult",
    "WorkflowResult",
    # Execution
    "RunContext",
    "StepDispatcher",
    "StepHandler",
    "default_handlers",
    "WorkflowEngine",
    "ProgressCallback",
    "allocate_workspace",
    # Registry
    "clear_template_registry",
    "get_template",
    "list_builtin_templates",
    "list_templates",
    "load_templates_from_dir",
    "register_template",
    # Exceptions
    "CycleDetectedError",
    "DependencyError",
    "StepOutputConflictError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateValidationError",
]
