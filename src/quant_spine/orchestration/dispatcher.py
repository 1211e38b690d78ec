"""Step dispatcher: turns a workflow step into a script invocation.

Manifesto:
    The engine knows *when* a step runs; the dispatcher knows *what* it
runs.  For each step type a ``StepHandler`` names the packaged script and
the step types whose outputs must already exist.  The dispatcher checks
those prerequisites, layers the script configuration, calls the
``ScriptExecutionService`` and normalises whatever comes back into a
``StepResult``.  It never raises: every problem is a failed result.

ARCHITECTURE
────────────
::

    StepDispatcher.dispatch(step, run_context)
      ├── handler lookup        → CONFIGURATION on unknown type
      ├── prerequisite check    → PREREQUISITE when an input is missing
      ├── build_config()        → merged ◄ step ◄ run keys ◄ outputs ◄ inputs
      ├── service.run(request)  → APPLICATION / EXECUTION / TIMEOUT
      └── StepResult.ok(payload minus "success")

Prerequisites:

    ==================  ==================================  ==================
    type                requires                            requires any of
    ==================  ==================================  ==================
    factor_generation   data_preparation
    model_training      data_preparation, factor_generation
    strategy_backtest   model_training
    result_analysis                                         strategy_backtest,
                                                            factor_generation
    ==================  ==================================  ==================

Tags:
    quant-spine, orchestration, dispatcher, step-handler, prerequisites
"""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from importlib import resources
from typing import Any

from quant_spine.core.errors import categorize_error
from quant_spine.core.logging import get_logger
from quant_spine.core.settings import QuantSpineSettings, get_settings
from quant_spine.execution.script_service import (
    ResponseCategory,
    ScriptExecutionService,
    ScriptRequest,
)
from quant_spine.orchestration.models import StepType, WorkflowStep, step_type_value
from quant_spine.orchestration.run_context import RunContext
from quant_spine.orchestration.step_result import StepErrorCategory, StepResult

logger = get_logger(__name__)

_SCRIPTS_PACKAGE = "quant_spine.scripts"

_RESPONSE_CATEGORIES = {
    ResponseCategory.APPLICATION: StepErrorCategory.APPLICATION,
    ResponseCategory.EXECUTION: StepErrorCategory.EXECUTION,
    ResponseCategory.TIMEOUT: StepErrorCategory.TIMEOUT,
}


@dataclass(frozen=True)
class StepHandler:
    """
    How one step type is executed.

    Attributes:
        step_type: Step type string this handler serves
        script_resource: File name inside ``quant_spine.scripts``
        script: Inline script body (takes precedence over the resource)
        requires: Step types that must all have produced output
        requires_any: Step types of which at least one must have produced output
    """

    step_type: str
    script_resource: str | None = None
    script: str | None = None
    requires: tuple[str, ...] = ()
    requires_any: tuple[str, ...] = ()

    def load_script(self) -> str:
        if self.script is not None:
            return self.script
        if self.script_resource is None:
            raise ValueError(f"Handler for '{self.step_type}' has no script")
        return (
            resources.files(_SCRIPTS_PACKAGE)
            .joinpath(self.script_resource)
            .read_text(encoding="utf-8")
        )

    def missing_prerequisites(self, run_context: RunContext) -> list[str]:
        missing = [t for t in self.requires if run_context.latest_output_of(t) is None]
        if self.requires_any and all(
            run_context.latest_output_of(t) is None for t in self.requires_any
        ):
            missing.append(" or ".join(self.requires_any))
        return missing

    def collect_inputs(self, run_context: RunContext) -> dict[str, Any]:
        inputs: dict[str, Any] = {}
        for step_type in (*self.requires, *self.requires_any):
            output = run_context.latest_output_of(step_type)
            if output is not None:
                inputs[step_type] = copy.deepcopy(output)
        return inputs


def _packaged(step_type: StepType, requires=(), requires_any=()) -> StepHandler:
    return StepHandler(
        step_type=step_type.value,
        script_resource=f"{step_type.value}.py",
        requires=tuple(t.value for t in requires),
        requires_any=tuple(t.value for t in requires_any),
    )


def default_handlers() -> dict[str, StepHandler]:
    """Handlers for the six built-in step types."""
    return {
        h.step_type: h
        for h in (
            _packaged(StepType.DATA_PREPARATION),
            _packaged(StepType.FACTOR_GENERATION, requires=[StepType.DATA_PREPARATION]),
            _packaged(
                StepType.MODEL_TRAINING,
                requires=[StepType.DATA_PREPARATION, StepType.FACTOR_GENERATION],
            ),
            _packaged(StepType.STRATEGY_BACKTEST, requires=[StepType.MODEL_TRAINING]),
            _packaged(
                StepType.RESULT_ANALYSIS,
                requires_any=[StepType.STRATEGY_BACKTEST, StepType.FACTOR_GENERATION],
            ),
            _packaged(StepType.REPORT_GENERATION),
        )
    }


def _step_category(category: ResponseCategory | str | None) -> StepErrorCategory:
    try:
        return _RESPONSE_CATEGORIES[ResponseCategory(category)]
    except (ValueError, KeyError):
        return StepErrorCategory.EXECUTION


class StepDispatcher:
    """
    Executes single workflow steps through a script service.

    Example:
        >>> dispatcher = StepDispatcher(SubprocessScriptService())
        >>> result = dispatcher.dispatch(step, run_context)
    """

    def __init__(
        self,
        service: ScriptExecutionService,
        settings: QuantSpineSettings | None = None,
    ):
        self.service = service
        self.settings = settings or get_settings()
        self._handlers = default_handlers()

    def register(self, step_type: StepType | str, handler: StepHandler) -> None:
        """Add or replace the handler for a step type."""
        self._handlers[step_type_value(step_type)] = handler

    def handler_for(self, step_type: StepType | str) -> StepHandler | None:
        return self._handlers.get(step_type_value(step_type))

    def build_config(
        self, step: WorkflowStep, run_context: RunContext, handler: StepHandler
    ) -> dict[str, Any]:
        """Layer the script configuration for ``step``."""
        config = copy.deepcopy(run_context.merged_config)
        config.update(copy.deepcopy(step.config))
        config.update(
            workspace_dir=str(run_context.workspace_path),
            workflow_name=run_context.workflow_name,
            run_id=run_context.run_id,
            step_name=step.name,
            step_type=step.type_value,
        )
        config["step_outputs"] = run_context.snapshot()
        config["inputs"] = handler.collect_inputs(run_context)
        return config

    def dispatch(
        self,
        step: WorkflowStep,
        run_context: RunContext,
        cancel_event: threading.Event | None = None,
    ) -> StepResult:
        started_at = datetime.now(UTC)
        type_value = step.type_value

        handler = self._handlers.get(type_value)
        if handler is None:
            logger.warning("step.unsupported_type", step=step.name, step_type=type_value)
            return StepResult.fail(
                step.name,
                type_value,
                f"unsupported step type: {type_value}",
                StepErrorCategory.CONFIGURATION,
                started_at=started_at,
            )

        if self.settings.validate_prerequisites:
            missing = handler.missing_prerequisites(run_context)
            if missing:
                logger.warning("step.prerequisite_missing", step=step.name, missing=missing)
                return StepResult.fail(
                    step.name,
                    type_value,
                    f"missing prerequisite output: {', '.join(missing)}",
                    StepErrorCategory.PREREQUISITE,
                    started_at=started_at,
                )

        timeout = (
            step.timeout_seconds
            if step.timeout_seconds is not None
            else self.settings.step_timeout_seconds
        )
        t0 = time.monotonic()
        try:
            request = ScriptRequest(
                script=handler.load_script(),
                config=self.build_config(step, run_context, handler),
                name=step.name,
                timeout_seconds=timeout,
                cancel_event=cancel_event,
                cwd=run_context.workspace_path,
            )
            response = self.service.run(request)
        except Exception as e:
            logger.exception(
                "step.dispatch_error",
                step=step.name,
                step_type=type_value,
                error_category=categorize_error(e).value,
            )
            return StepResult.fail(
                step.name,
                type_value,
                f"{type(e).__name__}: {e}",
                StepErrorCategory.INTERNAL,
                duration=time.monotonic() - t0,
                started_at=started_at,
            )
        duration = time.monotonic() - t0

        if not response.success:
            return StepResult.fail(
                step.name,
                type_value,
                response.error or "script failed without an error message",
                _step_category(response.category),
                duration=duration,
                started_at=started_at,
            )

        output = {k: v for k, v in (response.payload or {}).items() if k != "success"}
        return StepResult.ok(
            step.name, type_value, output, duration=duration, started_at=started_at
        )


__all__ = ["StepDispatcher", "StepHandler", "default_handlers"]
