"""Tests for SubprocessScriptService: real interpreter subprocesses.

Scripts here are tiny inline programs run with ``sys.executable`` so the
tests need nothing beyond the standard interpreter.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

from quant_spine.core.errors import ExecutionError
from quant_spine.execution.script_service import (
    ResponseCategory,
    ScriptExecutionService,
    ScriptRequest,
    SubprocessScriptService,
    parse_script_output,
)
from quant_spine.orchestration.dispatcher import StepDispatcher
from quant_spine.orchestration.models import StepType, WorkflowStep
from quant_spine.orchestration.run_context import RunContext

ECHO_CONFIG = """\
import json, sys
config = json.load(sys.stdin)
print(json.dumps({"success": True, "received": config}))
"""

SLEEPER = """\
import time
time.sleep(30)
print('{"success": true}')
"""


@pytest.fixture
def service(tmp_path: Path) -> SubprocessScriptService:
    return SubprocessScriptService(
        python_path=sys.executable,
        script_dir=tmp_path / "scripts",
        poll_interval=0.05,
        kill_grace=2.0,
    )


def _run(service, script: str, **kwargs):
    return service.run(ScriptRequest(script=script, name="probe", **kwargs))


# ---------------------------------------------------------------------------
# parse_script_output
# ---------------------------------------------------------------------------


class TestParseScriptOutput:
    def test_whole_output(self):
        assert parse_script_output('{"success": true}\n') == {"success": True}

    def test_multiline_json(self):
        assert parse_script_output('{\n  "success": false,\n  "error": "x"\n}') == {
            "success": False,
            "error": "x",
        }

    def test_last_line_after_banner(self):
        stdout = 'Loading qlib...\n[INFO] ready\n{"success": true, "n": 2}\n\n'
        assert parse_script_output(stdout) == {"success": True, "n": 2}

    @pytest.mark.parametrize("stdout", ["", "   \n"])
    def test_empty(self, stdout):
        with pytest.raises(ExecutionError, match="no output"):
            parse_script_output(stdout)

    def test_garbage(self):
        with pytest.raises(ExecutionError, match="failed to parse"):
            parse_script_output("hello\nworld")

    def test_not_an_object(self):
        with pytest.raises(ExecutionError, match="not a JSON object"):
            parse_script_output("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Subprocess outcomes
# ---------------------------------------------------------------------------


class TestSubprocessService:
    def test_satisfies_protocol(self, service):
        assert isinstance(service, ScriptExecutionService)

    def test_config_round_trips_through_stdin(self, service):
        response = _run(service, ECHO_CONFIG, config={"top_k": 5, "names": ["a", "b"]})

        assert response.success is True
        assert response.payload == {
            "success": True,
            "received": {"top_k": 5, "names": ["a", "b"]},
        }
        assert response.exit_code == 0
        assert response.error is None
        assert response.duration > 0

    def test_non_json_config_values_stringified(self, service, tmp_path):
        response = _run(service, ECHO_CONFIG, config={"path": tmp_path})
        assert response.payload["received"] == {"path": str(tmp_path)}

    def test_application_failure(self, service):
        response = _run(
            service, 'print(\'{"success": false, "error": "no instruments"}\')'
        )
        assert response.success is False
        assert response.error == "no instruments"
        assert response.category is ResponseCategory.APPLICATION
        assert response.payload["error"] == "no instruments"

    def test_application_failure_without_message(self, service):
        response = _run(service, 'print(\'{"success": false}\')')
        assert response.category is ResponseCategory.APPLICATION
        assert response.error == "script reported failure without an error message"

    def test_non_json_output(self, service):
        response = _run(service, "print('all done')")
        assert response.success is False
        assert response.category is ResponseCategory.EXECUTION
        assert "failed to parse script output" in response.error

    def test_no_output(self, service):
        response = _run(service, "pass")
        assert response.category is ResponseCategory.EXECUTION
        assert response.error == "script produced no output"

    def test_banner_then_json(self, service):
        response = _run(service, "print('banner')\nprint('{\"success\": true, \"v\": 1}')")
        assert response.success is True
        assert response.payload["v"] == 1

    def test_missing_success_field(self, service):
        response = _run(service, "print('{\"result\": 1}')")
        assert response.category is ResponseCategory.EXECUTION
        assert response.error == "script output missing boolean 'success' field"

    def test_non_boolean_success(self, service):
        response = _run(service, "print('{\"success\": \"yes\"}')")
        assert response.category is ResponseCategory.EXECUTION

    def test_nonzero_exit_includes_stderr_tail(self, service):
        script = "import sys\nsys.stderr.write('ValueError: bad frame\\n')\nsys.exit(3)\n"
        response = _run(service, script)

        assert response.success is False
        assert response.category is ResponseCategory.EXECUTION
        assert response.exit_code == 3
        assert response.error.startswith("script exited with code 3")
        assert "ValueError: bad frame" in response.error
        assert "ValueError: bad frame" in response.stderr

    def test_uncaught_exception(self, service):
        response = _run(service, "raise RuntimeError('explode')")
        assert response.category is ResponseCategory.EXECUTION
        assert "RuntimeError: explode" in response.error

    def test_timeout(self, service):
        start = time.monotonic()
        response = _run(service, SLEEPER, timeout_seconds=0.5)

        assert response.success is False
        assert response.category is ResponseCategory.TIMEOUT
        assert response.error == "Script 'probe' timed out after 0.5s"
        assert time.monotonic() - start < 10

    def test_cancel(self, service):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        try:
            start = time.monotonic()
            response = _run(service, SLEEPER, cancel_event=cancel)
        finally:
            timer.cancel()

        assert response.success is False
        assert response.category is ResponseCategory.EXECUTION
        assert response.error == "script cancelled"
        assert time.monotonic() - start < 10

    def test_bad_interpreter(self, tmp_path):
        service = SubprocessScriptService(python_path=str(tmp_path / "no-such-python"))
        response = _run(service, "print('{}')")
        assert response.category is ResponseCategory.EXECUTION
        assert response.error.startswith("failed to start script")

    def test_runs_in_request_cwd(self, service, tmp_path):
        script = 'import json, os\nprint(json.dumps({"success": True, "cwd": os.getcwd()}))'
        response = _run(service, script, cwd=tmp_path)
        assert Path(response.payload["cwd"]).resolve() == tmp_path.resolve()

    def test_temp_script_removed(self, service, tmp_path):
        _run(service, 'print(\'{"success": true}\')')
        _run(service, "raise SystemExit(1)")
        assert list((tmp_path / "scripts").iterdir()) == []

    def test_from_settings(self, settings, tmp_path):
        settings.python_path = sys.executable
        settings.script_dir = tmp_path / "s"
        service = SubprocessScriptService.from_settings(settings)
        assert service.python_path == sys.executable
        assert service.script_dir == tmp_path / "s"


# ---------------------------------------------------------------------------
# Packaged scripts
# ---------------------------------------------------------------------------


class TestPackagedReportScript:
    def test_report_generation_runs_end_to_end(self, service, settings, tmp_path):
        dispatcher = StepDispatcher(service, settings)
        ctx = RunContext.create("wf", tmp_path, {"instruments": ["SPY"]}, run_id="r1")
        ctx.record_output(
            "analyze",
            StepType.RESULT_ANALYSIS,
            {"metrics": {"annualized_return": 0.12, "max_drawdown": -0.08}},
        )

        result = dispatcher.dispatch(
            WorkflowStep(name="report", type=StepType.REPORT_GENERATION), ctx
        )

        assert result.success is True, result.error
        report = Path(result.output["report_file"])
        assert report.parent == tmp_path
        assert report.is_file()
