"""Step and workflow results: the envelopes a run produces.

Manifesto:
    Every dispatched step comes back as a ``StepResult`` whether it
succeeded, failed inside the script, timed out, or never reached the
script at all.  The engine folds these into a ``WorkflowResult`` which is
always returned, carrying the partial history of a failed run.

ARCHITECTURE
────────────
::

    StepResult
      ├── .ok(name, type, output, duration)           → success
      ├── .fail(name, type, error, category, duration) → failure
      └── .to_dict()

    StepErrorCategory ── CONFIGURATION, PREREQUISITE, EXECUTION,
                         TIMEOUT, APPLICATION, INTERNAL

    WorkflowResult   ── success, steps[], metrics, output_files, cancelled

Tags:
    quant-spine, orchestration, step-result, envelope, success-failure
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class StepErrorCategory(str, Enum):
    """Why a step failed."""

    CONFIGURATION = "CONFIGURATION"  # Unknown step type
    PREREQUISITE = "PREREQUISITE"  # Prior output missing
    EXECUTION = "EXECUTION"  # Spawn failure, bad exit, malformed output, cancelled
    TIMEOUT = "TIMEOUT"  # Exceeded its time bound
    APPLICATION = "APPLICATION"  # Script reported success=false
    INTERNAL = "INTERNAL"  # Bug in the dispatcher


@dataclass
class StepResult:
    """
    Outcome of one dispatched step.

    Attributes:
        name: Step name
        type: Step type string
        success: Whether the script reported success
        duration: Wall-clock seconds around the service call
        output: Script payload without its ``success`` key
        error: Error message, set iff ``success`` is False
        error_category: StepErrorCategory value on failure
        started_at: UTC time the dispatch began
    """

    name: str
    type: str
    success: bool
    duration: float = 0.0
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_category: StepErrorCategory | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self):
        if not self.success and not self.error:
            self.error = "Step failed without error message"
        if self.success:
            self.error = None
            self.error_category = None
        elif self.error_category is None:
            self.error_category = StepErrorCategory.INTERNAL

    @classmethod
    def ok(
        cls,
        name: str,
        type: str,
        output: dict[str, Any] | None = None,
        duration: float = 0.0,
        started_at: datetime | None = None,
    ) -> StepResult:
        return cls(
            name=name,
            type=type,
            success=True,
            duration=duration,
            output=output or {},
            started_at=started_at or datetime.now(UTC),
        )

    @classmethod
    def fail(
        cls,
        name: str,
        type: str,
        error: str,
        category: StepErrorCategory | str = StepErrorCategory.INTERNAL,
        duration: float = 0.0,
        started_at: datetime | None = None,
    ) -> StepResult:
        """
        Create a failed result.

        Args:
            error: Human-readable message, surfaced verbatim
            category: StepErrorCategory (or its string value)
        """
        return cls(
            name=name,
            type=type,
            success=False,
            duration=duration,
            error=error,
            error_category=StepErrorCategory(category),
            started_at=started_at or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and the CLI's ``--json`` output."""
        return {
            "name": self.name,
            "type": self.type,
            "success": self.success,
            "duration": round(self.duration, 6),
            "output": self.output,
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "started_at": self.started_at.isoformat(),
        }


@dataclass
class WorkflowResult:
    """
    Result of one engine run.

    Attributes:
        workflow_name: Template name
        run_id: Unique run identifier
        success: True only if every step ran and none failed fatally
        steps: One StepResult per attempted step, in attempt order
        duration: Total wall-clock seconds of the run
        output_files: Artifact paths copied out of the workspace
        metrics: ``{step_name: metrics}`` from step outputs
        error: ``"Step '<name>' failed: <reason>"`` on fatal failure
        cancelled: Run stopped at a step boundary by the cancel signal
    """

    workflow_name: str
    run_id: str
    success: bool = False
    steps: list[StepResult] = field(default_factory=list)
    duration: float = 0.0
    output_files: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    cancelled: bool = False

    @property
    def completed_steps(self) -> list[str]:
        return [s.name for s in self.steps if s.success]

    @property
    def failed_steps(self) -> list[str]:
        return [s.name for s in self.steps if not s.success]

    @property
    def failed_step(self) -> StepResult | None:
        """First failed step, if any."""
        for step in self.steps:
            if not step.success:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_name": self.workflow_name,
            "run_id": self.run_id,
            "success": self.success,
            "cancelled": self.cancelled,
            "error": self.error,
            "duration": round(self.duration, 6),
            "steps": [s.to_dict() for s in self.steps],
            "output_files": list(self.output_files),
            "metrics": self.metrics,
        }
