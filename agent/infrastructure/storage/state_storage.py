from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import asyncio
import copy

from langchain_core.messages import BaseMessage, messages_from_dict, messages_to_dict


class StateStorage(ABC):
    """Durable storage substrate for per-session state and message history.

    Values are stored as plain JSON-compatible data; the state slot is
    returned raw so callers can detect corruption.
    """

    @abstractmethod
    async def load_state(self, session_id: str) -> Optional[Any]:
        """Return the raw state slot, or None if absent"""

    @abstractmethod
    async def save_state(self, session_id: str, state: Dict[str, Any]) -> None:
        """Replace the state slot"""

    @abstractmethod
    async def load_messages(self, session_id: str) -> List[BaseMessage]:
        """Return the stored conversation history"""

    @abstractmethod
    async def save_messages(self, session_id: str, messages: List[BaseMessage]) -> None:
        """Replace the stored conversation history"""


class InMemoryStateStorage(StateStorage):
    """Process-local storage, used for development and tests"""

    def __init__(self):
        self.states: Dict[str, Any] = {}
        self.messages: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def load_state(self, session_id: str) -> Optional[Any]:
        async with self._lock:
            return copy.deepcopy(self.states.get(session_id))

    async def save_state(self, session_id: str, state: Dict[str, Any]) -> None:
        async with self._lock:
            self.states[session_id] = copy.deepcopy(state)

    async def load_messages(self, session_id: str) -> List[BaseMessage]:
        async with self._lock:
            stored = self.messages.get(session_id, [])
            return messages_from_dict(copy.deepcopy(stored))

    async def save_messages(self, session_id: str, messages: List[BaseMessage]) -> None:
        async with self._lock:
            self.messages[session_id] = messages_to_dict(messages)
