"""Execution boundary: the script service protocol and its subprocess backend."""

from quant_spine.execution.script_service import (
    CANCELLED_MESSAGE,
    ResponseCategory,
    ScriptExecutionService,
    ScriptRequest,
    ScriptResponse,
    SubprocessScriptService,
    parse_script_output,
)

__all__ = [
    "CANCELLED_MESSAGE",
    "ResponseCategory",
    "ScriptExecutionService",
    "ScriptRequest",
    "ScriptResponse",
    "SubprocessScriptService",
    "parse_script_output",
]
