"""Script execution service: the boundary to the analytics interpreter.

Manifesto:
    The engine never computes anything itself.  Each step hands a script
    body plus a JSON configuration to a ``ScriptExecutionService`` and gets
    back a typed ``ScriptResponse``.  Any backend that honours the
    protocol (a subprocess, a container, a remote worker, a test fake) is
    interchangeable.

ARCHITECTURE
────────────
::

    ScriptRequest ──► ScriptExecutionService.run() ──► ScriptResponse
                          │
                          └── SubprocessScriptService
                                 write temp .py → spawn python → JSON on stdin
                                 poll: exit │ deadline (kill) │ cancel (terminate)
                                 parse stdout → {"success": bool, ...}

Output contract for every script: read one JSON object from stdin, print
exactly one JSON object with a boolean ``success`` key.  On failure the
object carries an ``error`` string.

Tags:
    quant-spine, execution, subprocess, protocol, script
"""

from __future__ import annotations

import json
import os
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from quant_spine.core.errors import ExecutionError, ScriptTimeoutError
from quant_spine.core.logging import get_logger

logger = get_logger(__name__)

_STDERR_TAIL_LINES = 20

# Error reported when a run is torn down by its cancel event
CANCELLED_MESSAGE = "script cancelled"


class ResponseCategory(str, Enum):
    """Failure class reported by a service."""

    APPLICATION = "application"  # Script ran and reported success=false
    EXECUTION = "execution"  # Could not run, crashed, or produced garbage
    TIMEOUT = "timeout"  # Killed at the deadline


# ── Request / response ───────────────────────────────────────────────


@dataclass
class ScriptRequest:
    """One script invocation."""

    script: str
    config: dict[str, Any] = field(default_factory=dict)
    name: str = "script"
    timeout_seconds: float | None = None
    cancel_event: threading.Event | None = None
    cwd: Path | None = None


@dataclass
class ScriptResponse:
    """Outcome of a script invocation.

    ``payload`` is the parsed JSON object the script printed (possibly
    empty when the script never produced one).  ``error`` and ``category``
    are set iff ``success`` is False.
    """

    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    category: ResponseCategory | None = None
    exit_code: int | None = None
    stderr: str = ""
    duration: float = 0.0

    @classmethod
    def failure(
        cls,
        error: str,
        category: ResponseCategory,
        **kwargs: Any,
    ) -> ScriptResponse:
        return cls(success=False, error=error, category=category, **kwargs)


@runtime_checkable
class ScriptExecutionService(Protocol):
    """Runs a script body with a JSON config and returns its JSON result.

    Implementors must never raise for script-level problems; every
    failure is reported through ``ScriptResponse``.
    """

    def run(self, request: ScriptRequest) -> ScriptResponse: ...


# ── Output parsing ───────────────────────────────────────────────────


def parse_script_output(stdout: str) -> dict[str, Any]:
    """Extract the result object from a script's stdout.

    The whole output is tried first, then the last non-empty line, so
    scripts whose libraries print banners still work.

    Raises:
        ExecutionError: No JSON object could be found.
    """
    text = stdout.strip()
    if not text:
        raise ExecutionError("script produced no output")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        last_line = [line for line in text.splitlines() if line.strip()][-1]
        try:
            parsed = json.loads(last_line)
        except json.JSONDecodeError as e:
            raise ExecutionError(f"failed to parse script output: {e}", cause=e) from e

    if not isinstance(parsed, dict):
        raise ExecutionError("script output is not a JSON object")
    return parsed


def _tail(text: str, lines: int = _STDERR_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


# ── Subprocess backend ───────────────────────────────────────────────


class SubprocessScriptService:
    """Runs each request as ``<python_path> <tempfile.py>`` with config on stdin.

    Args:
        python_path: Interpreter with the analytics stack installed
        script_dir: Where temporary script files go (system temp if None)
        poll_interval: Seconds between deadline/cancel checks
        kill_grace: Seconds to wait after terminate before killing
    """

    def __init__(
        self,
        python_path: str = "python3",
        script_dir: Path | str | None = None,
        poll_interval: float = 0.2,
        kill_grace: float = 5.0,
    ):
        self.python_path = python_path
        self.script_dir = Path(script_dir) if script_dir else None
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    @classmethod
    def from_settings(cls, settings) -> SubprocessScriptService:
        return cls(python_path=settings.python_path, script_dir=settings.script_dir)

    def run(self, request: ScriptRequest) -> ScriptResponse:
        start = time.monotonic()
        try:
            script_path = self._write_script(request)
        except (OSError, ExecutionError) as e:
            return ScriptResponse.failure(
                f"failed to write script: {e}",
                ResponseCategory.EXECUTION,
                duration=time.monotonic() - start,
            )

        try:
            exit_code, stdout, stderr = self._spawn_and_wait(script_path, request)
        except ScriptTimeoutError as e:
            logger.warning(
                "script.timeout", name=request.name, timeout_seconds=e.timeout_seconds
            )
            return ScriptResponse.failure(
                e.message, ResponseCategory.TIMEOUT, duration=time.monotonic() - start
            )
        except ExecutionError as e:
            logger.warning("script.failed", name=request.name, error=e.message)
            return ScriptResponse.failure(
                e.message, ResponseCategory.EXECUTION, duration=time.monotonic() - start
            )
        finally:
            script_path.unlink(missing_ok=True)

        duration = time.monotonic() - start
        return self._interpret(request, exit_code, stdout, stderr, duration)

    # ── internals ────────────────────────────────────────────────

    def _write_script(self, request: ScriptRequest) -> Path:
        if self.script_dir is not None:
            self.script_dir.mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(
            prefix=f"quantspine_{request.name}_",
            suffix=".py",
            dir=self.script_dir,
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(request.script)
        return Path(path)

    def _spawn_and_wait(
        self, script_path: Path, request: ScriptRequest
    ) -> tuple[int, str, str]:
        try:
            config_json = json.dumps(request.config, default=str)
        except (TypeError, ValueError) as e:
            raise ExecutionError(f"script config is not JSON serializable: {e}", cause=e) from e

        logger.debug("script.start", name=request.name, python=self.python_path)
        try:
            process = subprocess.Popen(
                [self.python_path, str(script_path)],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(request.cwd) if request.cwd else None,
            )
        except OSError as e:
            raise ExecutionError(f"failed to start script: {e}", cause=e) from e

        deadline = (
            time.monotonic() + request.timeout_seconds
            if request.timeout_seconds is not None
            else None
        )
        pending_input: str | None = config_json
        while True:
            try:
                stdout, stderr = process.communicate(
                    input=pending_input, timeout=self.poll_interval
                )
                return process.returncode, stdout or "", stderr or ""
            except subprocess.TimeoutExpired:
                # communicate() refuses input once started
                pending_input = None

            if deadline is not None and time.monotonic() >= deadline:
                process.kill()
                process.communicate()
                raise ScriptTimeoutError(request.name, request.timeout_seconds)

            if request.cancel_event is not None and request.cancel_event.is_set():
                self._stop(process)
                logger.info("script.cancelled", name=request.name)
                raise ExecutionError(CANCELLED_MESSAGE)

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()

    def _interpret(
        self,
        request: ScriptRequest,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> ScriptResponse:
        common = {"exit_code": exit_code, "stderr": stderr, "duration": duration}

        if exit_code != 0:
            message = f"script exited with code {exit_code}"
            tail = _tail(stderr)
            if tail:
                message = f"{message}: {tail}"
            logger.warning("script.exit_nonzero", name=request.name, exit_code=exit_code)
            return ScriptResponse.failure(message, ResponseCategory.EXECUTION, **common)

        try:
            payload = parse_script_output(stdout)
        except ExecutionError as e:
            return ScriptResponse.failure(e.message, ResponseCategory.EXECUTION, **common)

        success = payload.get("success")
        if not isinstance(success, bool):
            return ScriptResponse.failure(
                "script output missing boolean 'success' field",
                ResponseCategory.EXECUTION,
                payload=payload,
                **common,
            )

        if not success:
            error = payload.get("error")
            if not error:
                error = "script reported failure without an error message"
            return ScriptResponse.failure(
                str(error), ResponseCategory.APPLICATION, payload=payload, **common
            )

        logger.debug("script.complete", name=request.name, duration=round(duration, 3))
        return ScriptResponse(success=True, payload=payload, **common)


__all__ = [
    "CANCELLED_MESSAGE",
    "ResponseCategory",
    "ScriptExecutionService",
    "ScriptRequest",
    "ScriptResponse",
    "SubprocessScriptService",
    "parse_script_output",
]
