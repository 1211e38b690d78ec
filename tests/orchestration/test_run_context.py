"""Tests for RunContext: append-only outputs, snapshots and lookups."""

from __future__ import annotations

from pathlib import Path

import pytest

from quant_spine.orchestration.exceptions import StepOutputConflictError
from quant_spine.orchestration.models import StepType
from quant_spine.orchestration.run_context import RunContext


@pytest.fixture
def ctx(tmp_path: Path) -> RunContext:
    return RunContext.create("wf", tmp_path, {"top_k": 5}, run_id="run-1")


class TestCreate:
    def test_fields(self, ctx, tmp_path):
        assert ctx.run_id == "run-1"
        assert ctx.workflow_name == "wf"
        assert ctx.workspace_path == tmp_path
        assert ctx.merged_config == {"top_k": 5}
        assert dict(ctx.step_outputs) == {}

    def test_generates_run_id(self, tmp_path):
        a = RunContext.create("wf", tmp_path)
        b = RunContext.create("wf", tmp_path)
        assert a.run_id != b.run_id


class TestRecordOutput:
    def test_record_and_get(self, ctx):
        ctx.record_output("prep", StepType.DATA_PREPARATION, {"data_file": "d.pkl"})
        assert ctx.get_output("prep") == {"data_file": "d.pkl"}
        assert ctx.get_output("prep", "data_file") == "d.pkl"
        assert ctx.get_output("prep", "missing", "dflt") == "dflt"
        assert ctx.get_output("other", default={}) == {}
        assert ctx.has_output("prep")

    def test_duplicate_key_rejected(self, ctx):
        ctx.record_output("prep", StepType.DATA_PREPARATION, {})
        with pytest.raises(StepOutputConflictError):
            ctx.record_output("prep", StepType.DATA_PREPARATION, {"again": True})
        assert ctx.get_output("prep") == {}

    def test_recorded_output_is_copied(self, ctx):
        output = {"stats": {"rows": 1}}
        ctx.record_output("prep", StepType.DATA_PREPARATION, output)
        output["stats"]["rows"] = 99
        assert ctx.get_output("prep", "stats") == {"rows": 1}


class TestViews:
    def test_step_outputs_is_read_only(self, ctx):
        ctx.record_output("prep", StepType.DATA_PREPARATION, {})
        with pytest.raises(TypeError):
            ctx.step_outputs["prep"] = {"x": 1}

    def test_snapshot_is_deep_copy(self, ctx):
        ctx.record_output("prep", StepType.DATA_PREPARATION, {"stats": {"rows": 1}})
        snap = ctx.snapshot()
        snap["prep"]["stats"]["rows"] = 42
        snap["new"] = {}
        assert ctx.get_output("prep", "stats") == {"rows": 1}
        assert "new" not in ctx.step_outputs


class TestLatestOutputOf:
    def test_by_type(self, ctx):
        ctx.record_output("prep", StepType.DATA_PREPARATION, {"v": 1})
        ctx.record_output("factors", "factor_generation", {"v": 2})
        assert ctx.latest_output_of(StepType.FACTOR_GENERATION) == {"v": 2}
        assert ctx.latest_output_of("data_preparation") == {"v": 1}
        assert ctx.latest_output_of(StepType.MODEL_TRAINING) is None

    def test_most_recent_wins(self, ctx):
        ctx.record_output("prep_us", StepType.DATA_PREPARATION, {"region": "us"})
        ctx.record_output("prep_cn", StepType.DATA_PREPARATION, {"region": "cn"})
        assert ctx.latest_output_of(StepType.DATA_PREPARATION) == {"region": "cn"}
