# Execution with timeout & monitoring
from typing import Any, Optional
import asyncio
import time

from pydantic import BaseModel
import structlog

from domain.errors import ToolExecutionFailure
from domain.models.tool_call import ToolCallRequest, ToolResult
from infrastructure.observability.langfuse_tracing import traced
from infrastructure.observability.logging import agent_logger, metrics
from .tool_registry import ToolRegistry
from .tool_validator import ToolParameterValidator, describe_arguments

logger = structlog.get_logger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert handler output (models, lists of models) to JSON data"""

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    return value


class ToolExecutor:
    """Runs registered tool handlers; failures become error payloads, never exceptions"""

    def __init__(self, registry: ToolRegistry, timeout: Optional[float] = 30.0):
        self.registry = registry
        self.timeout = timeout

    @traced("tool_execution")
    async def execute(self, call: ToolCallRequest) -> ToolResult:
        start = time.perf_counter()
        try:
            data = await self._run(call)
            result = ToolResult(tool_call_id=call.id, tool_name=call.name, success=True, data=data)
        except ToolExecutionFailure as e:
            result = ToolResult(tool_call_id=call.id, tool_name=call.name, success=False, error=e.to_payload())

        result.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        agent_logger.log_tool_execution(
            tool_name=call.name,
            tool_call_id=call.id,
            arguments=describe_arguments(call.args),
            duration_ms=result.duration_ms,
            success=result.success,
            error=result.error["error"] if result.error else None
        )
        metrics.record_latency("tool_execution", result.duration_ms, tags={"tool": call.name})
        return result

    async def _run(self, call: ToolCallRequest) -> Any:
        tool = self.registry.get_tool(call.name)
        if tool is None:
            raise ToolExecutionFailure(call.name, f"Unknown tool '{call.name}'", call.id)

        params = ToolParameterValidator.validate_tool_call(tool, call)

        try:
            output = await asyncio.wait_for(tool.handler(params), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ToolExecutionFailure(tool.name, f"Timed out after {self.timeout}s", call.id)
        except ToolExecutionFailure:
            raise
        except Exception as e:
            logger.exception("Tool handler failed", tool_name=tool.name, tool_call_id=call.id)
            raise ToolExecutionFailure(tool.name, str(e) or type(e).__name__, call.id) from e

        return to_jsonable(output)
