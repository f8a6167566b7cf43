from typing import Dict, Iterable, List, Optional, Set
import asyncio

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from pydantic import BaseModel, Field
import structlog

from domain.errors import UnresolvedToolCall
from domain.models.tool_call import (
    APPROVAL_NO, APPROVAL_YES, DENIED_RESULT, PendingToolCall, ToolCallRequest, ToolResult
)
from domain.streaming.output_stream import OutputStream, StreamChunk
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from .message_sanitizer import message_text, without_tool_calls

logger = structlog.get_logger(__name__)


class ResolutionResult(BaseModel):
    """Outcome of resolving a history's tool calls"""
    history: List[BaseMessage] = Field(description="History to persist; pending calls stay in it")
    model_messages: List[BaseMessage] = Field(description="History to send to the model; pending calls removed")
    pending: List[PendingToolCall] = Field(default_factory=list)


class ToolCallResolver:
    """Gives every tool call in a history a result, or reports it as pending.

    Auto-executable calls without a result are executed. Confirmation-gated
    calls are executed once the caller answers them with APPROVAL_YES and get
    a denial result for APPROVAL_NO. Results are re-placed directly after the
    assistant message that made the call, in call order.

    Once the abort event is set nothing more is executed: calls that still
    need a run stay unresolved in the history and are left out of the model
    input, to be picked up by the next turn.
    """

    def __init__(self, registry: ToolRegistry, executor: ToolExecutor):
        self.registry = registry
        self.executor = executor

    async def resolve(
        self,
        messages: Iterable[BaseMessage],
        output: Optional[OutputStream] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> ResolutionResult:
        messages = list(messages)
        results: Dict[str, ToolMessage] = {
            m.tool_call_id: m for m in messages if isinstance(m, ToolMessage)
        }

        history: List[BaseMessage] = []
        pending: List[PendingToolCall] = []
        deferred: Set[str] = set()

        for message in messages:
            if isinstance(message, ToolMessage):
                continue
            history.append(message)
            if not isinstance(message, AIMessage):
                continue

            for call in message.tool_calls:
                request = ToolCallRequest.from_message_call(call)
                existing = results.get(request.id)
                if abort is not None and abort.is_set() and self._needs_execution(request, existing):
                    deferred.add(request.id)
                    if existing is not None:
                        history.append(existing)
                    continue

                resolved = await self._resolve_call(request, existing, output)
                if resolved is None:
                    pending.append(PendingToolCall(tool_call_id=request.id, tool_name=request.name, args=request.args))
                else:
                    history.append(resolved)

        pending_ids = {p.tool_call_id for p in pending}
        held_back = pending_ids | deferred
        model_messages: List[BaseMessage] = []
        for message in history:
            if isinstance(message, ToolMessage) and message.tool_call_id in deferred:
                continue
            if isinstance(message, AIMessage) and held_back.intersection(c["id"] for c in message.tool_calls):
                message = without_tool_calls(message, held_back)
                if message is None:
                    continue
            model_messages.append(message)

        if pending:
            logger.info("Tool calls awaiting confirmation", tool_call_ids=sorted(pending_ids))
        if deferred:
            logger.info("Turn cancelled before tool calls ran", tool_call_ids=sorted(deferred))

        return ResolutionResult(history=history, model_messages=model_messages, pending=pending)

    def _needs_execution(self, request: ToolCallRequest, existing: Optional[ToolMessage]) -> bool:
        if existing is None:
            return not self.registry.requires_confirmation(request.name)
        return message_text(existing).strip() == APPROVAL_YES

    async def _resolve_call(
        self,
        request: ToolCallRequest,
        existing: Optional[ToolMessage],
        output: Optional[OutputStream],
    ) -> Optional[ToolMessage]:
        if existing is None:
            if self.registry.requires_confirmation(request.name):
                return None
            logger.info("Executing unresolved tool call", tool_name=request.name, tool_call_id=request.id)
            return self._emit(await self.executor.execute(request), output)

        answer = message_text(existing).strip()
        if answer == APPROVAL_YES:
            logger.info("Tool call confirmed", tool_name=request.name, tool_call_id=request.id)
            return self._emit(await self.executor.execute(request), output)
        if answer == APPROVAL_NO:
            logger.info("Tool call denied", tool_name=request.name, tool_call_id=request.id)
            denied = ToolResult(tool_call_id=request.id, tool_name=request.name, success=False, error=DENIED_RESULT)
            return self._emit(denied, output)
        return existing

    @staticmethod
    def _emit(result: ToolResult, output: Optional[OutputStream]) -> ToolMessage:
        if output is not None:
            output.write(StreamChunk.tool_result(result.tool_call_id, result.tool_name, result.payload, result.success))
        return result.to_message()


def ensure_no_dangling_calls(messages: List[BaseMessage]):
    """Raise UnresolvedToolCall if any tool call lacks a following result"""

    answered = set()
    for message in reversed(messages):
        if isinstance(message, ToolMessage):
            answered.add(message.tool_call_id)
        elif isinstance(message, AIMessage):
            for call in message.tool_calls:
                if call["id"] not in answered:
                    raise UnresolvedToolCall(call["id"], call["name"])
