from typing import Any, Iterable, List, Optional, Set

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
import structlog

logger = structlog.get_logger(__name__)


def tool_call_ids(message: BaseMessage) -> List[str]:
    if isinstance(message, AIMessage):
        return [call["id"] for call in message.tool_calls]
    return []


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of blocks"""

    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def without_tool_calls(message: AIMessage, drop_ids: Set[str]) -> Optional[AIMessage]:
    """Copy of an assistant message minus the given calls; None if nothing is left"""

    remaining = [call for call in message.tool_calls if call["id"] not in drop_ids]
    content: Any = message.content
    if isinstance(content, list):
        content = [
            block for block in content
            if not (isinstance(block, dict) and block.get("type") == "tool_use" and block.get("id") in drop_ids)
        ]

    closed = message.model_copy(update={"tool_calls": remaining, "content": content})
    if not remaining and not message_text(closed).strip():
        return None
    return closed


def _drop_orphan_results(messages: Iterable[BaseMessage]) -> List[BaseMessage]:
    seen: Set[str] = set()
    kept = []
    for message in messages:
        if isinstance(message, ToolMessage) and message.tool_call_id not in seen:
            logger.debug("Dropping orphan tool result", tool_call_id=message.tool_call_id)
            continue
        seen.update(tool_call_ids(message))
        kept.append(message)
    return kept


def _trailing_call_index(messages: List[BaseMessage]) -> Optional[int]:
    """Index of the assistant message that only tool results follow, if any"""

    index = len(messages) - 1
    while index >= 0 and isinstance(messages[index], ToolMessage):
        index -= 1
    if index >= 0 and tool_call_ids(messages[index]):
        return index
    return None


def sanitize_messages(messages: Iterable[BaseMessage]) -> List[BaseMessage]:
    """Close out trailing tool calls that never received a result.

    Tool results that answer no earlier call are dropped as well. The result
    is a fixpoint, so sanitizing twice changes nothing.
    """

    history = _drop_orphan_results(messages)

    while True:
        index = _trailing_call_index(history)
        if index is None:
            break

        answered = {m.tool_call_id for m in history[index + 1:] if isinstance(m, ToolMessage)}
        dangling = {call_id for call_id in tool_call_ids(history[index]) if call_id not in answered}
        if not dangling:
            break

        logger.info("Closing out dangling tool calls", tool_call_ids=sorted(dangling))
        closed = without_tool_calls(history[index], dangling)
        if closed is None:
            history = history[:index] + history[index + 1:]
        else:
            history = history[:index] + [closed] + history[index + 1:]

    return history
