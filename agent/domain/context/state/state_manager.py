from typing import Any, List
import asyncio

from pydantic import ValidationError
import structlog

from domain.errors import StateCorruption
from domain.models.agent_state import (
    AgentState, AvatarProfile, AvatarProfileUpdate, MemoryItem, MemoryType, Tone,
    MEMORY_CAP, PUBLIC_MEMORY_COUNT, DEFAULT_DISPLAY_NAME, generate_id
)
from infrastructure.observability.logging import agent_logger
from infrastructure.storage.state_storage import StateStorage

logger = structlog.get_logger(__name__)


class StateStore:
    """Owns the avatar profile and memory log of one session.

    Every mutation is a read-modify-write under a lock that persists the new
    snapshot before swapping it in, so readers only ever observe a complete
    pre- or post-mutation state.
    """

    def __init__(self, session_id: str, storage: StateStorage):
        self.session_id = session_id
        self.storage = storage
        self._state = AgentState()
        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> AgentState:
        """Load persisted state, resetting it if absent or malformed"""

        async with self._lock:
            if self._initialized:
                return self._state

            raw = await self.storage.load_state(self.session_id)
            try:
                state = self._heal(raw)
            except StateCorruption as e:
                if raw is None:
                    logger.info("No stored state, initializing defaults", session_id=self.session_id)
                else:
                    logger.warning("Agent state corrupted, resetting", session_id=self.session_id, reason=str(e))
                state = AgentState()
                await self.storage.save_state(self.session_id, state.to_storage())

            self._state = state
            self._initialized = True
            logger.info("State store initialized", session_id=self.session_id,
                        has_avatar=state.avatar is not None, memory_count=len(state.memories))
            return state

    def _heal(self, raw: Any) -> AgentState:
        if not isinstance(raw, dict):
            raise StateCorruption("state slot missing or not an object")
        if not isinstance(raw.get("memories"), list):
            raise StateCorruption("memories is not a list")

        try:
            state = AgentState.model_validate(raw)
        except ValidationError as e:
            raise StateCorruption(f"state failed validation: {e.error_count()} errors") from e

        if len(state.memories) > MEMORY_CAP:
            state = state.model_copy(update={"memories": state.memories[-MEMORY_CAP:]})
        return state

    async def _ensure_initialized(self):
        if not self._initialized:
            await self.initialize()

    async def get_state(self) -> AgentState:
        """Current snapshot with the memory list truncated to the last five"""

        await self._ensure_initialized()
        return self._state.public_view()

    async def get_full_state(self) -> AgentState:
        """Current snapshot with the full memory log"""

        await self._ensure_initialized()
        return self._state

    async def save_avatar_profile(self, update: AvatarProfileUpdate) -> AvatarProfile:
        """Create or merge the avatar profile"""

        await self._ensure_initialized()
        async with self._lock:
            current = self._state.avatar
            avatar = AvatarProfile(
                id=current.id if current else generate_id(),
                display_name=update.display_name or (current.display_name if current else None) or DEFAULT_DISPLAY_NAME,
                bio=update.bio or (current.bio if current else "") or "",
                tone=update.tone or (current.tone if current else None) or Tone.CASUAL,
                expertise_tags=update.expertise_tags or (current.expertise_tags if current else []) or [],
            )
            await self._commit(self._state.model_copy(update={"avatar": avatar}))

        agent_logger.log_state_mutation("save_avatar_profile", avatar.model_dump(mode="json"))
        return avatar

    async def save_memory(self, memory_type: MemoryType, content: str) -> List[MemoryItem]:
        """Append a memory, evicting the oldest past the cap; returns the last five"""

        await self._ensure_initialized()
        async with self._lock:
            item = MemoryItem(type=memory_type, content=content)
            memories = [*self._state.memories, item]
            evicted = max(len(memories) - MEMORY_CAP, 0)
            if evicted:
                memories = memories[evicted:]
                logger.info("Memory cap reached, evicted oldest", session_id=self.session_id, evicted=evicted)

            new_state = self._state.model_copy(update={"memories": memories})
            await self._commit(new_state)

        agent_logger.log_state_mutation("save_memory", {"type": item.type.value, "total": len(memories)})
        return new_state.recent_memories(PUBLIC_MEMORY_COUNT)

    async def reset(self) -> AgentState:
        """Clear the avatar and all memories"""

        await self._ensure_initialized()
        async with self._lock:
            await self._commit(AgentState())

        agent_logger.log_state_mutation("reset")
        return self._state

    async def _commit(self, state: AgentState):
        # Persist first: a storage failure must leave the old snapshot in place
        await self.storage.save_state(self.session_id, state.to_storage())
        self._state = state
