"""Run context: per-run state shared by the steps of one execution.

The engine creates one ``RunContext`` per ``execute`` call and is its only
writer.  Step outputs are append-only: a step name is recorded once, and
readers only ever see a read-only view or a deep-copied snapshot, so a
script configuration built for step B cannot alias state that a later
step writes.

Example::

    ctx = RunContext.create("factor_research", workspace, {"top_k": 50})
    ctx.record_output("prepare_data", StepType.DATA_PREPARATION, {"data_file": "..."})
    ctx.get_output("prepare_data", "data_file")
    ctx.latest_output_of(StepType.DATA_PREPARATION)
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from quant_spine.orchestration.exceptions import StepOutputConflictError
from quant_spine.orchestration.models import StepType, step_type_value


@dataclass
class RunContext:
    """
    Mutable state of a single workflow run.

    Attributes:
        run_id: Unique identifier for this run
        workflow_name: Template being executed
        workspace_path: Run-scoped working directory
        merged_config: Template base config with the run overrides applied
        started_at: When the run began
    """

    run_id: str
    workflow_name: str
    workspace_path: Path
    merged_config: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _outputs: dict[str, dict[str, Any]] = field(default_factory=dict, repr=False)
    _output_types: dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def create(
        cls,
        workflow_name: str,
        workspace_path: Path,
        merged_config: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> RunContext:
        return cls(
            run_id=run_id or str(uuid.uuid4()),
            workflow_name=workflow_name,
            workspace_path=Path(workspace_path),
            merged_config=dict(merged_config or {}),
        )

    # =========================================================================
    # Accessors (read-only)
    # =========================================================================

    @property
    def step_outputs(self) -> Mapping[str, dict[str, Any]]:
        """Read-only view of recorded outputs keyed by step name."""
        return MappingProxyType(self._outputs)

    def get_output(self, step_name: str, key: str | None = None, default: Any = None) -> Any:
        """
        Get output from a prior step.

        Args:
            step_name: Name of the step
            key: Optional key within the step's output
            default: Default value if not found
        """
        step_output = self._outputs.get(step_name)
        if step_output is None:
            return default
        if key is None:
            return step_output
        return step_output.get(key, default)

    def has_output(self, step_name: str) -> bool:
        return step_name in self._outputs

    def latest_output_of(self, step_type: StepType | str) -> dict[str, Any] | None:
        """Output of the most recently recorded step of ``step_type``."""
        wanted = step_type_value(step_type)
        for name in reversed(self._output_types):
            if self._output_types[name] == wanted:
                return self._outputs[name]
        return None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Deep copy of all outputs recorded so far."""
        return copy.deepcopy(self._outputs)

    # =========================================================================
    # Mutation (engine only)
    # =========================================================================

    def record_output(
        self, step_name: str, step_type: StepType | str, output: dict[str, Any]
    ) -> None:
        """Record a step's output; a step name may only be recorded once."""
        if step_name in self._outputs:
            raise StepOutputConflictError(step_name)
        self._outputs[step_name] = copy.deepcopy(dict(output))
        self._output_types[step_name] = step_type_value(step_type)

    def __repr__(self) -> str:
        return (
            f"RunContext(run_id={self.run_id!r}, workflow={self.workflow_name!r}, "
            f"outputs={list(self._outputs)})"
        )
