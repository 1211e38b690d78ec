"""Tests for StepResult and WorkflowResult envelopes."""

from __future__ import annotations

from quant_spine.orchestration.step_result import (
    StepErrorCategory,
    StepResult,
    WorkflowResult,
)


class TestStepResult:
    def test_ok(self):
        result = StepResult.ok("prep", "data_preparation", {"rows": 10}, duration=1.5)
        assert result.success is True
        assert result.output == {"rows": 10}
        assert result.error is None
        assert result.error_category is None
        assert result.duration == 1.5

    def test_fail(self):
        result = StepResult.fail(
            "prep", "data_preparation", "no instruments", StepErrorCategory.APPLICATION
        )
        assert result.success is False
        assert result.error == "no instruments"
        assert result.error_category is StepErrorCategory.APPLICATION
        assert result.output == {}

    def test_fail_accepts_category_string(self):
        result = StepResult.fail("x", "t", "late", "TIMEOUT")
        assert result.error_category is StepErrorCategory.TIMEOUT

    def test_failure_always_has_error_and_category(self):
        result = StepResult(name="x", type="t", success=False)
        assert result.error
        assert result.error_category is StepErrorCategory.INTERNAL

    def test_success_never_carries_error(self):
        result = StepResult(name="x", type="t", success=True, error="stale")
        assert result.error is None

    def test_to_dict(self):
        result = StepResult.fail("x", "model_training", "boom", StepErrorCategory.EXECUTION)
        data = result.to_dict()
        assert data["name"] == "x"
        assert data["type"] == "model_training"
        assert data["success"] is False
        assert data["error"] == "boom"
        assert data["error_category"] == "EXECUTION"
        assert isinstance(data["started_at"], str)


class TestWorkflowResult:
    def _result(self) -> WorkflowResult:
        return WorkflowResult(
            workflow_name="wf",
            run_id="r1",
            steps=[
                StepResult.ok("a", "data_preparation"),
                StepResult.fail("b", "factor_generation", "bad", StepErrorCategory.APPLICATION),
            ],
            error="Step 'b' failed: bad",
        )

    def test_defaults(self):
        result = WorkflowResult(workflow_name="wf", run_id="r1")
        assert result.success is False
        assert result.cancelled is False
        assert result.steps == []
        assert result.output_files == []
        assert result.metrics == {}

    def test_step_helpers(self):
        result = self._result()
        assert result.completed_steps == ["a"]
        assert result.failed_steps == ["b"]
        assert result.failed_step.name == "b"

    def test_failed_step_none_when_all_ok(self):
        result = WorkflowResult(
            workflow_name="wf", run_id="r", steps=[StepResult.ok("a", "data_preparation")]
        )
        assert result.failed_step is None

    def test_to_dict(self):
        data = self._result().to_dict()
        assert data["workflow_name"] == "wf"
        assert data["run_id"] == "r1"
        assert data["success"] is False
        assert data["cancelled"] is False
        assert data["error"] == "Step 'b' failed: bad"
        assert [s["name"] for s in data["steps"]] == ["a", "b"]
        assert data["output_files"] == []
        assert data["metrics"] == {}
