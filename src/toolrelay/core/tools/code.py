from __future__ import annotations

from toolrelay.core.tools.base import Tool, ToolClass, Toolkit
from toolrelay.core.workers import CodeExecutionWorker, WorkerSettings

EXECUTE_CODE_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "task": {
            "type": "string",
            "description": "Description of the task to solve with code",
        },
    },
    "required": ["task"],
}

EXECUTE_CODE_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "task": {"type": "string"},
        "code": {"type": "string"},
        "stdout": {"type": "string"},
        "stderr": {"type": "string"},
        "exit_code": {"type": "integer"},
    },
    "required": ["task", "stdout", "exit_code"],
}


def code_toolkit(worker: CodeExecutionWorker | None = None) -> Toolkit:
    worker = worker or CodeExecutionWorker(WorkerSettings(base_url=""))
    tool = Tool(
        name="executeCode",
        description=(
            "Execute Python code for calculations, data processing, algorithms, "
            "or mathematical computations."
        ),
        input_schema=EXECUTE_CODE_INPUT_SCHEMA,
        output_schema=EXECUTE_CODE_OUTPUT_SCHEMA,
        handler=worker.invoke,
        tool_class=ToolClass.EXECUTION,
    )
    return Toolkit(
        name="toolrelay.code",
        version="1.0.0",
        description="Sandboxed code execution delegated to the code interpreter worker.",
        tools=(tool,),
    )


__all__ = ["code_toolkit", "EXECUTE_CODE_INPUT_SCHEMA", "EXECUTE_CODE_OUTPUT_SCHEMA"]
