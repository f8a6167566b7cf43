from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional
import asyncio
import time

import structlog

from domain.context.document_matcher import DocumentMatcher
from domain.context.state.state_manager import StateStore
from domain.models.agent_state import AgentState
from domain.orchestration.core.avatar_agent import AvatarAgent
from domain.schedule.task_scheduler import AsyncioTaskScheduler, ScheduledTask
from domain.streaming.output_stream import ChunkType, FinishReason, StreamChunk
from infrastructure.config.settings import Settings
from infrastructure.inference.inference_client import InferenceClient
from infrastructure.storage.state_storage import InMemoryStateStorage, StateStorage

logger = structlog.get_logger(__name__)

ChunkSink = Callable[[StreamChunk], Awaitable[None]]


class SessionHandle:
    """An agent plus the bookkeeping that serializes its turns"""

    def __init__(self, agent: AvatarAgent, scheduler: AsyncioTaskScheduler):
        self.agent = agent
        self.scheduler = scheduler
        self.lock = asyncio.Lock()
        self.abort: Optional[asyncio.Event] = None
        self.sink: Optional[ChunkSink] = None
        self.active = 0
        self.last_used = time.monotonic()

    def touch(self):
        self.last_used = time.monotonic()

    def is_idle(self) -> bool:
        """No turn running or queued, no client attached, nothing scheduled"""
        return self.active == 0 and self.sink is None and not self.scheduler.has_pending


class SessionRegistry:
    """One AvatarAgent per session id; at most one turn in flight per session"""

    def __init__(
        self,
        settings: Settings,
        inference_client: Optional[InferenceClient],
        storage: Optional[StateStorage] = None
    ):
        self.settings = settings
        self.inference_client = inference_client
        self.storage = storage or InMemoryStateStorage()
        self.matcher = DocumentMatcher(settings.docs_base_url)
        self.sessions: Dict[str, SessionHandle] = {}
        self._lock = asyncio.Lock()

    async def get_session(self, session_id: str) -> SessionHandle:
        async with self._lock:
            handle = self.sessions.get(session_id)
            if handle is None:
                async def on_task_due(description: str, task: ScheduledTask):
                    await self.run_scheduled_task(session_id, description, task)

                scheduler = AsyncioTaskScheduler(on_task_due)
                agent = AvatarAgent(
                    session_id,
                    self.storage,
                    self.inference_client,
                    settings=self.settings,
                    scheduler=scheduler,
                    matcher=self.matcher,
                )
                await agent.initialize()
                handle = SessionHandle(agent, scheduler)
                self.sessions[session_id] = handle
                logger.info("Session created", session_id=session_id)
            handle.touch()
            return handle

    async def get_agent(self, session_id: str) -> AvatarAgent:
        return (await self.get_session(session_id)).agent

    async def read_avatar_state(self, session_id: str) -> AgentState:
        """Public state view that does not register the session"""

        handle = self.sessions.get(session_id)
        if handle is not None:
            return await handle.agent.get_avatar_state()
        if await self.storage.load_state(session_id) is None:
            return AgentState()
        return await StateStore(session_id, self.storage).get_state()

    async def attach_sink(self, session_id: str, sink: ChunkSink):
        (await self.get_session(session_id)).sink = sink

    def detach_sink(self, session_id: str, sink: Optional[ChunkSink] = None):
        handle = self.sessions.get(session_id)
        if handle is not None and (sink is None or handle.sink is sink):
            handle.sink = None

    def cancel(self, session_id: str) -> bool:
        """Signal the session's running turn to stop; False if none is running"""

        handle = self.sessions.get(session_id)
        if handle is None or handle.abort is None:
            return False
        handle.abort.set()
        logger.info("Turn cancellation requested", session_id=session_id)
        return True

    @asynccontextmanager
    async def _turn(self, session_id: str) -> AsyncIterator[SessionHandle]:
        """Hold the session's turn lock; a queued or running turn keeps the session from eviction"""

        handle = await self.get_session(session_id)
        handle.active += 1
        try:
            async with handle.lock:
                yield handle
        finally:
            handle.active -= 1
            handle.touch()

    async def handle_user_message(self, session_id: str, content: str) -> FinishReason:
        async with self._turn(session_id) as handle:
            await handle.agent.add_user_message(content)
            return await self._stream_turn(session_id, handle)

    async def handle_confirmation(self, session_id: str, tool_call_id: str, approved: bool) -> Optional[FinishReason]:
        """Answer a pending tool call and continue the conversation; None if nothing was pending"""

        async with self._turn(session_id) as handle:
            if not await handle.agent.confirm_tool_call(tool_call_id, approved):
                return None
            return await self._stream_turn(session_id, handle)

    async def run_scheduled_task(self, session_id: str, description: str, task: ScheduledTask):
        async with self._turn(session_id) as handle:
            await handle.agent.execute_task(description, task)
            await self._stream_turn(session_id, handle)

    async def _stream_turn(self, session_id: str, handle: SessionHandle) -> FinishReason:
        handle.abort = asyncio.Event()
        reason = FinishReason.ERROR
        try:
            async for chunk in handle.agent.chat(handle.abort):
                if chunk.type == ChunkType.FINISH:
                    reason = chunk.finish_reason
                if handle.sink is not None:
                    await handle.sink(chunk)
        finally:
            handle.abort = None
        if handle.sink is None:
            logger.info("Turn finished with no client attached", session_id=session_id, finish_reason=reason.value)
        return reason

    async def evict_idle(self, idle_timeout: float) -> List[str]:
        """Drop sessions idle for longer than idle_timeout seconds; state stays in storage"""

        now = time.monotonic()
        evicted = []
        async with self._lock:
            for session_id, handle in list(self.sessions.items()):
                if handle.is_idle() and now - handle.last_used >= idle_timeout:
                    del self.sessions[session_id]
                    evicted.append((session_id, handle))

        for session_id, handle in evicted:
            await handle.scheduler.shutdown()
            logger.info("Idle session evicted", session_id=session_id)
        return [session_id for session_id, _ in evicted]

    async def sweep_idle(self, idle_timeout: float, interval: float):
        """Periodic eviction of idle sessions"""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evict_idle(idle_timeout)
            except Exception as e:
                logger.error("Session sweep error", error=str(e))

    async def shutdown(self):
        for handle in list(self.sessions.values()):
            if handle.abort is not None:
                handle.abort.set()
            await handle.scheduler.shutdown()
        self.sessions.clear()
        logger.info("Session registry shut down")
