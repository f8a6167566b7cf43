from typing import AsyncIterator, List, Optional
import asyncio

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
import structlog
from structlog.contextvars import bound_contextvars

from domain.context.context_builder import build_system_prompt
from domain.context.document_matcher import DocumentMatcher
from domain.context.state.state_manager import StateStore
from domain.conversation.message_sanitizer import sanitize_messages
from domain.conversation.tool_call_resolver import ToolCallResolver
from domain.errors import AgentError
from domain.models.agent_state import AgentState, generate_id
from domain.models.tool_call import APPROVAL_NO, APPROVAL_YES, PendingToolCall
from domain.schedule.schedule_tools import build_schedule_tools
from domain.schedule.task_scheduler import ScheduledTask, TaskScheduler
from domain.streaming.output_stream import FinishReason, OutputStream, StreamChunk
from domain.tool.builtin_tools import build_avatar_tools
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from infrastructure.config.settings import Settings, get_settings
from infrastructure.inference.inference_client import InferenceClient
from infrastructure.storage.state_storage import StateStorage
from .main_agent import AgentOrchestrator, TurnContext

logger = structlog.get_logger(__name__)


class AvatarAgent:
    """The avatar co-pilot for one session.

    Owns the session's message history and state store. Each call to ``chat``
    runs one turn: sanitize the history, resolve outstanding tool calls, then
    run the bounded model/tool loop, streaming everything through one
    OutputStream. Callers must not run two turns of the same agent at once.
    """

    def __init__(
        self,
        session_id: str,
        storage: StateStorage,
        inference_client: InferenceClient,
        settings: Optional[Settings] = None,
        scheduler: Optional[TaskScheduler] = None,
        matcher: Optional[DocumentMatcher] = None,
    ):
        settings = settings or get_settings()
        self.session_id = session_id
        self.storage = storage
        self.scheduler = scheduler
        self.state_store = StateStore(session_id, storage)
        self.matcher = matcher or DocumentMatcher(settings.docs_base_url)

        tools = build_avatar_tools(self.state_store, self.matcher)
        if scheduler is not None:
            tools += build_schedule_tools(scheduler)
        self.registry = ToolRegistry(tools)
        self.executor = ToolExecutor(self.registry, timeout=settings.tool_timeout)
        self.resolver = ToolCallResolver(self.registry, self.executor)
        self.orchestrator = AgentOrchestrator(
            inference_client,
            self.registry,
            self.executor,
            max_steps=settings.max_steps,
            temperature=settings.temperature,
            inference_timeout=settings.inference_timeout,
        )

        self.messages: List[BaseMessage] = []
        self._loaded = False

    async def initialize(self):
        """Load state and history; the only startup hook the agent has"""

        if self._loaded:
            return
        await self.state_store.initialize()
        self.messages = await self.storage.load_messages(self.session_id)
        self._loaded = True
        logger.info("Avatar agent ready", session_id=self.session_id, message_count=len(self.messages))

    async def add_user_message(self, content: str):
        await self.initialize()
        self.messages = [*self.messages, HumanMessage(content=content)]
        await self._persist_messages()

    async def execute_task(self, description: str, task: Optional[ScheduledTask] = None):
        """Append the user turn that triggers a scheduled task"""

        logger.info("Scheduled task triggered", session_id=self.session_id,
                    task_id=task.id if task else None)
        await self.add_user_message(f"Running scheduled task: {description}")

    def pending_confirmations(self) -> List[PendingToolCall]:
        """Confirmation-gated calls in the history that have no answer yet"""

        answered = {m.tool_call_id for m in self.messages if isinstance(m, ToolMessage)}
        pending = []
        for message in self.messages:
            if not isinstance(message, AIMessage):
                continue
            for call in message.tool_calls:
                if call["id"] not in answered and self.registry.requires_confirmation(call["name"]):
                    pending.append(PendingToolCall(tool_call_id=call["id"], tool_name=call["name"], args=call["args"]))
        return pending

    async def confirm_tool_call(self, tool_call_id: str, approved: bool) -> bool:
        """Record the user's answer to a pending call; False if nothing was waiting on it"""

        await self.initialize()
        if tool_call_id not in {p.tool_call_id for p in self.pending_confirmations()}:
            logger.warning("No pending tool call to confirm", session_id=self.session_id, tool_call_id=tool_call_id)
            return False

        answer = ToolMessage(content=APPROVAL_YES if approved else APPROVAL_NO, tool_call_id=tool_call_id)
        self.messages = [*self.messages, answer]
        await self._persist_messages()
        return True

    async def get_avatar_state(self) -> AgentState:
        return await self.state_store.get_state()

    async def system_prompt(self) -> str:
        state = await self.state_store.get_full_state()
        schedule_context = self.scheduler.prompt_fragment() if self.scheduler is not None else ""
        return build_system_prompt(state, schedule_context)

    async def chat(self, abort: Optional[asyncio.Event] = None) -> AsyncIterator[StreamChunk]:
        """Run one turn and yield its chunks, ending with a finish chunk"""

        abort = abort or asyncio.Event()
        output = OutputStream()
        turn = asyncio.ensure_future(self._run_turn(output, abort))
        try:
            async for chunk in output:
                yield chunk
        finally:
            if not turn.done():
                # Consumer went away mid-turn
                abort.set()
            await turn

    async def _run_turn(self, output: OutputStream, abort: asyncio.Event):
        reason = FinishReason.ERROR
        with bound_contextvars(session_id=self.session_id, turn_id=generate_id()):
            try:
                await self.initialize()

                history = sanitize_messages(self.messages)
                resolution = await self.resolver.resolve(history, output, abort)
                self.messages = resolution.history
                await self._persist_messages()
                for pending in resolution.pending:
                    output.write(StreamChunk.confirmation_required(pending.tool_call_id, pending.tool_name, pending.args))

                outcome = await self.orchestrator.run_turn(
                    resolution.model_messages,
                    TurnContext(session_id=self.session_id, output=output, abort=abort,
                                system_prompt=self.system_prompt),
                )
                self.messages = [*self.messages, *outcome.new_messages]
                await self._persist_messages()

                reason = outcome.finish_reason
                if resolution.pending and reason == FinishReason.STOP:
                    reason = FinishReason.AWAITING_CONFIRMATION

            except AgentError as e:
                logger.error("Turn failed", error=str(e), error_type=type(e).__name__)
                output.write(StreamChunk.failure(str(e)))
            except Exception as e:
                logger.exception("Unexpected error during turn", error=str(e))
                output.write(StreamChunk.failure("Internal error while processing the message"))
            finally:
                output.close(reason)

    async def _persist_messages(self):
        await self.storage.save_messages(self.session_id, self.messages)
