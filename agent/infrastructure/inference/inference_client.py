"""
Inference collaborator: streams text deltas and tool-call requests for one
model step.

``LangChainInferenceClient`` adapts any LangChain chat model. Tool-call
arguments the provider could not parse are surfaced as requests carrying
``args_error`` so the executor can answer them with an error payload.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessageChunk, BaseMessage, SystemMessage
from pydantic import BaseModel, Field
import structlog

from domain.models.agent_state import generate_id
from domain.models.tool_call import ToolCallRequest
from infrastructure.config.settings import Settings, DEFAULT_MAX_STEPS

logger = structlog.get_logger(__name__)


class InferenceEventType(str, Enum):
    TEXT_DELTA = "text_delta"
    TOOL_CALL = "tool_call"


class InferenceEvent(BaseModel):
    type: InferenceEventType
    text: Optional[str] = None
    tool_call: Optional[ToolCallRequest] = None


class InferenceRequest(BaseModel):
    """Everything the model needs for one step"""
    system_prompt: str
    messages: List[BaseMessage] = Field(default_factory=list)
    tool_schemas: List[Dict[str, Any]] = Field(default_factory=list)
    max_steps: int = DEFAULT_MAX_STEPS
    temperature: float = 0.7


class InferenceClient(ABC):
    """Streams one model step"""

    provider: str = "unknown"

    @abstractmethod
    def stream(self, request: InferenceRequest) -> AsyncIterator[InferenceEvent]:
        """Yield text deltas as they arrive, then the step's tool-call requests"""


def _chunk_text(chunk: AIMessageChunk) -> str:
    content = chunk.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
        if isinstance(block, str) or (isinstance(block, dict) and block.get("type") == "text")
    )


class LangChainInferenceClient(InferenceClient):
    """Inference through a LangChain chat model with bound tools"""

    def __init__(self, model: BaseChatModel, provider: str = "langchain"):
        self.model = model
        self.provider = provider

    async def stream(self, request: InferenceRequest) -> AsyncIterator[InferenceEvent]:
        runnable = self.model.bind_tools(request.tool_schemas) if request.tool_schemas else self.model
        messages = [SystemMessage(content=request.system_prompt), *request.messages]
        config = {"configurable": {"temperature": request.temperature}}

        aggregate: Optional[AIMessageChunk] = None
        async for chunk in runnable.astream(messages, config=config):
            text = _chunk_text(chunk)
            if text:
                yield InferenceEvent(type=InferenceEventType.TEXT_DELTA, text=text)
            aggregate = chunk if aggregate is None else aggregate + chunk

        if aggregate is None:
            return

        for call in aggregate.tool_calls:
            yield InferenceEvent(
                type=InferenceEventType.TOOL_CALL,
                tool_call=ToolCallRequest(id=call.get("id") or generate_id(), name=call["name"], args=call["args"]),
            )

        for invalid in aggregate.invalid_tool_calls:
            logger.warning("Model sent malformed tool arguments", tool_name=invalid.get("name"),
                           error=invalid.get("error"))
            yield InferenceEvent(
                type=InferenceEventType.TOOL_CALL,
                tool_call=ToolCallRequest(
                    id=invalid.get("id") or generate_id(),
                    name=invalid.get("name") or "unknown",
                    args={},
                    args_error=invalid.get("error") or f"could not parse {invalid.get('args')!r}",
                ),
            )


def create_chat_model(settings: Settings) -> BaseChatModel:
    """Build the configured chat model; temperature stays overridable per request"""

    return init_chat_model(
        settings.model_name,
        model_provider=settings.model_provider,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        configurable_fields=("temperature",),
    )


def create_inference_client(settings: Settings) -> LangChainInferenceClient:
    return LangChainInferenceClient(create_chat_model(settings), provider=settings.model_provider)
