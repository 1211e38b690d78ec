"""Workflow engine: runs a template from workspace allocation to teardown.

Manifesto:
    One ``execute`` call is one run: merge the config, allocate a private
workspace, walk the steps in order, fold each ``StepResult`` into the run
context, stop at the first fatal failure, and always clean up.  The engine
holds no per-run state on ``self``, so one engine can serve concurrent runs
from several threads.

ARCHITECTURE
────────────
::

    WorkflowEngine.execute(template, override_config, progress, cancel_event)
      │
      ├── merged = base_config ◄ override_config        (shallow, override wins)
      ├── allocate_workspace()                           (removed on every exit)
      │     └── for step in template.execution_order():
      │           ├── cancel_event set?  → cancelled, stop
      │           ├── progress(step, pct, "Running step: ...")
      │           ├── dispatcher.dispatch(step, run_context)
      │           ├── ok    → run_context.record_output(), metrics
      │           └── fail  → error, progress(step, pct, error), stop
      │                      (optional steps may continue when enabled)
      ├── progress("complete", 100, "Workflow completed")
      └── collect artifacts (artifact_dir) before teardown

Example::

    engine = WorkflowEngine(SubprocessScriptService.from_settings(settings), settings)
    result = engine.execute(get_template("factor_research"), {"top_k": 20})
    if not result.success:
        print(result.error)

Tags:
    quant-spine, orchestration, engine, workflow, run, fail-fast
"""

from __future__ import annotations

import shutil
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from quant_spine.core.errors import ConfigError
from quant_spine.core.logging import LogContext, get_logger
from quant_spine.core.settings import QuantSpineSettings, get_settings
from quant_spine.execution.script_service import CANCELLED_MESSAGE, ScriptExecutionService
from quant_spine.orchestration.dispatcher import StepDispatcher
from quant_spine.orchestration.models import WorkflowTemplate
from quant_spine.orchestration.run_context import RunContext
from quant_spine.orchestration.step_result import StepErrorCategory, StepResult, WorkflowResult
from quant_spine.orchestration.workspace import allocate_workspace

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int, str], None]

COMPLETE_STEP_NAME = "complete"
COMPLETE_MESSAGE = "Workflow completed"


class WorkflowEngine:
    """
    Executes workflow templates step by step.

    Args:
        service: Backend that runs step scripts
        settings: Engine settings (process-wide settings if None)
        dispatcher: Custom dispatcher (built from ``service`` if None)
    """

    def __init__(
        self,
        service: ScriptExecutionService,
        settings: QuantSpineSettings | None = None,
        dispatcher: StepDispatcher | None = None,
    ):
        self.service = service
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or StepDispatcher(service, self.settings)

    def execute(
        self,
        template: WorkflowTemplate,
        override_config: Mapping[str, Any] | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> WorkflowResult:
        """
        Run ``template`` once.

        Args:
            template: Validated workflow template
            override_config: Run-level config, wins over ``template.base_config``
            progress: Called as ``(step_name, percent, message)``
            cancel_event: Checked before every step and passed to the service

        Returns:
            WorkflowResult with the attempted steps, even on failure

        Raises:
            ConfigError: ``template`` is None
            WorkspaceError: The workspace could not be created
        """
        if template is None:
            raise ConfigError("A workflow template is required")

        merged_config = {**template.base_config, **(override_config or {})}
        run_id = str(uuid.uuid4())
        result = WorkflowResult(workflow_name=template.name, run_id=run_id)
        start = time.monotonic()

        with LogContext(workflow=template.name, run_id=run_id):
            logger.info("workflow.start", step_count=len(template.steps))

            with allocate_workspace(self.settings.workspace_root) as workspace:
                run_context = RunContext.create(
                    template.name, workspace, merged_config, run_id=run_id
                )
                self._run_steps(template, run_context, result, progress, cancel_event)
                if self.settings.artifact_dir is not None:
                    result.output_files = self._collect_artifacts(run_context)

            result.duration = time.monotonic() - start
            logger.info(
                "workflow.complete",
                success=result.success,
                cancelled=result.cancelled,
                duration_seconds=round(result.duration, 3),
                completed_steps=len(result.completed_steps),
                failed_steps=len(result.failed_steps),
            )
        return result

    def _run_steps(
        self,
        template: WorkflowTemplate,
        run_context: RunContext,
        result: WorkflowResult,
        progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> None:
        order = template.execution_order()
        total = len(order)

        for index, step in enumerate(order):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("workflow.cancelled", before_step=step.name)
                result.cancelled = True
                return

            percent = index * 100 // total
            _notify(progress, step.name, percent, f"Running step: {step.description or step.name}")

            logger.info("step.start", step=step.name, step_type=step.type_value)
            step_result = self.dispatcher.dispatch(step, run_context, cancel_event)
            result.steps.append(step_result)

            if step_result.success:
                run_context.record_output(step.name, step.type, step_result.output)
                metrics = step_result.output.get("metrics")
                if isinstance(metrics, dict):
                    result.metrics[step.name] = metrics
                logger.info(
                    "step.complete", step=step.name, duration=round(step_result.duration, 3)
                )
                continue

            if _torn_down_by_cancel(step_result, cancel_event):
                logger.info("workflow.cancelled", during_step=step.name)
                result.cancelled = True
                return

            if self.settings.continue_on_optional_failure and not step.required:
                logger.warning(
                    "step.optional_failed",
                    step=step.name,
                    error=step_result.error,
                    category=step_result.error_category.value,
                )
                continue

            result.error = f"Step '{step.name}' failed: {step_result.error}"
            logger.error(
                "step.failed",
                step=step.name,
                error=step_result.error,
                category=step_result.error_category.value,
            )
            _notify(progress, step.name, percent, result.error)
            return

        _notify(progress, COMPLETE_STEP_NAME, 100, COMPLETE_MESSAGE)
        result.success = True

    def _collect_artifacts(self, run_context: RunContext) -> list[str]:
        """Copy ``*_file`` outputs that live in the workspace to ``artifact_dir/<run_id>``."""
        workspace = run_context.workspace_path.resolve()
        target_dir = Path(self.settings.artifact_dir) / run_context.run_id
        collected: list[str] = []

        for step_name, output in run_context.step_outputs.items():
            for key, value in output.items():
                if not key.endswith("_file") or not isinstance(value, str):
                    continue
                source = Path(value)
                if not source.is_absolute():
                    source = workspace / source
                source = source.resolve()
                if not source.is_relative_to(workspace) or not source.is_file():
                    continue
                destination = target_dir / source.relative_to(workspace)
                if str(destination) in collected:
                    continue
                try:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(source, destination)
                except OSError as e:
                    logger.warning(
                        "artifact.copy_failed", step=step_name, file=str(source), error=str(e)
                    )
                    continue
                collected.append(str(destination))

        if collected:
            logger.info("artifact.collected", count=len(collected), target=str(target_dir))
        return collected


def _torn_down_by_cancel(
    step_result: StepResult, cancel_event: threading.Event | None
) -> bool:
    """A step killed by the cancel signal ends the run as cancelled, not failed."""
    return (
        cancel_event is not None
        and cancel_event.is_set()
        and step_result.error_category is StepErrorCategory.EXECUTION
        and step_result.error == CANCELLED_MESSAGE
    )


def _notify(progress: ProgressCallback | None, step_name: str, percent: int, message: str) -> None:
    if progress is not None:
        progress(step_name, percent, message)


__all__ = ["WorkflowEngine", "ProgressCallback"]
