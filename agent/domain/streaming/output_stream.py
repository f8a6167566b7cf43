from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional
import asyncio

from pydantic import BaseModel
import structlog

logger = structlog.get_logger(__name__)


class ChunkType(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CONFIRMATION_REQUIRED = "confirmation_required"
    ERROR = "error"
    FINISH = "finish"


class FinishReason(str, Enum):
    STOP = "stop"
    STEP_LIMIT = "step_limit"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CANCELLED = "cancelled"
    ERROR = "error"


class StreamChunk(BaseModel):
    """One incremental unit of a turn's output"""
    type: ChunkType
    text: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    result: Any = None
    success: Optional[bool] = None
    error: Optional[str] = None
    finish_reason: Optional[FinishReason] = None

    @classmethod
    def text_delta(cls, text: str) -> "StreamChunk":
        return cls(type=ChunkType.TEXT_DELTA, text=text)

    @classmethod
    def tool_call(cls, tool_call_id: str, tool_name: str, args: Dict[str, Any]) -> "StreamChunk":
        return cls(type=ChunkType.TOOL_CALL, tool_call_id=tool_call_id, tool_name=tool_name, args=args)

    @classmethod
    def tool_result(cls, tool_call_id: str, tool_name: str, result: Any, success: bool = True) -> "StreamChunk":
        return cls(type=ChunkType.TOOL_RESULT, tool_call_id=tool_call_id, tool_name=tool_name,
                   result=result, success=success)

    @classmethod
    def confirmation_required(cls, tool_call_id: str, tool_name: str, args: Dict[str, Any]) -> "StreamChunk":
        return cls(type=ChunkType.CONFIRMATION_REQUIRED, tool_call_id=tool_call_id, tool_name=tool_name, args=args)

    @classmethod
    def failure(cls, message: str) -> "StreamChunk":
        return cls(type=ChunkType.ERROR, error=message)

    @classmethod
    def finish(cls, reason: FinishReason) -> "StreamChunk":
        return cls(type=ChunkType.FINISH, finish_reason=reason)


_CLOSED = object()


class OutputStream:
    """Single-consumer, forward-only chunk stream for one turn.

    The resolver and the step loop write into the same stream. Chunks are
    never revised once written, and writes after close are discarded.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: StreamChunk) -> bool:
        if self._closed:
            logger.debug("Dropping chunk written after close", chunk_type=chunk.type.value)
            return False
        self._queue.put_nowait(chunk)
        self.written += 1
        return True

    def close(self, reason: Optional[FinishReason] = None):
        """Close the stream, optionally emitting a finish chunk first"""

        if self._closed:
            return
        if reason is not None:
            self.write(StreamChunk.finish(reason))
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[StreamChunk]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
