from typing import TypedDict, Annotated, List, Dict, Any, Optional, Callable, Awaitable, Literal
import asyncio
import operator

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END
from pydantic import BaseModel, ConfigDict, Field
import structlog

from domain.conversation.message_sanitizer import without_tool_calls
from domain.conversation.tool_call_resolver import ensure_no_dangling_calls
from domain.errors import InferenceFailure
from domain.models.tool_call import ToolCallRequest
from domain.streaming.output_stream import FinishReason, OutputStream, StreamChunk
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from infrastructure.config.settings import DEFAULT_MAX_STEPS
from infrastructure.inference.inference_client import (
    InferenceClient, InferenceEventType, InferenceRequest
)
from infrastructure.observability.langfuse_tracing import traced
from infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

SystemPromptProvider = Callable[[], Awaitable[str]]


class TurnState(TypedDict):
    """State for the step graph"""
    messages: Annotated[List[BaseMessage], operator.add]
    new_messages: Annotated[List[BaseMessage], operator.add]
    step: int
    calls: List[ToolCallRequest]
    draft: Optional[AIMessage]
    status: Optional[FinishReason]


class TurnContext(BaseModel):
    """Per-turn collaborators handed to the graph nodes through the run config"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    output: OutputStream
    abort: asyncio.Event
    system_prompt: SystemPromptProvider


class TurnOutcome(BaseModel):
    new_messages: List[BaseMessage] = Field(default_factory=list)
    finish_reason: FinishReason
    steps: int = 0


class AgentOrchestrator:
    """Bounded model/tool loop built as a LangGraph state machine.

    await_model streams one inference step. If the model asked for tools,
    execute_tools runs them and control returns to await_model; otherwise the
    turn ends. A turn makes at most ``max_steps`` model invocations.
    """

    def __init__(
        self,
        inference_client: InferenceClient,
        registry: ToolRegistry,
        executor: ToolExecutor,
        max_steps: int = DEFAULT_MAX_STEPS,
        temperature: float = 0.7,
        inference_timeout: Optional[float] = 60.0,
    ):
        self.inference_client = inference_client
        self.registry = registry
        self.executor = executor
        self.max_steps = max_steps
        self.temperature = temperature
        self.inference_timeout = inference_timeout
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(TurnState)

        workflow.add_node("await_model", self.await_model_node)
        workflow.add_node("execute_tools", self.execute_tools_node)

        workflow.set_entry_point("await_model")

        workflow.add_conditional_edges(
            "await_model",
            self.route_after_model,
            {
                "tools": "execute_tools",
                "done": END
            }
        )
        workflow.add_conditional_edges(
            "execute_tools",
            self.route_after_tools,
            {
                "model": "await_model",
                "done": END
            }
        )

        return workflow.compile()

    async def await_model_node(self, state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
        turn: TurnContext = config["configurable"]["turn"]
        if turn.abort.is_set():
            return {"status": FinishReason.CANCELLED}

        step = state["step"] + 1
        ensure_no_dangling_calls(state["messages"])

        request = InferenceRequest(
            system_prompt=await turn.system_prompt(),
            messages=state["messages"],
            tool_schemas=self.registry.get_tool_schemas(),
            max_steps=self.max_steps,
            temperature=self.temperature,
        )
        metrics.increment_counter("model_steps", tags={"session_id": turn.session_id})
        logger.debug("Model step", session_id=turn.session_id, step=step)

        text_parts: List[str] = []
        calls: List[ToolCallRequest] = []

        async def consume():
            async for event in self.inference_client.stream(request):
                if event.type == InferenceEventType.TEXT_DELTA:
                    text_parts.append(event.text)
                    turn.output.write(StreamChunk.text_delta(event.text))
                elif event.tool_call is not None:
                    calls.append(event.tool_call)

        try:
            with metrics.timer("inference_step", tags={"provider": self.inference_client.provider}):
                completed = await self._race_abort(consume(), turn.abort)
        except Exception as e:
            failure = e if isinstance(e, InferenceFailure) else InferenceFailure(str(e) or type(e).__name__)
            logger.error("Inference failed", session_id=turn.session_id, step=step, error=str(failure))
            turn.output.write(StreamChunk.failure(f"Inference failed: {failure}"))
            return {"step": step, "status": FinishReason.ERROR}

        text = "".join(text_parts)
        if not completed:
            logger.info("Turn cancelled during inference", session_id=turn.session_id, step=step)
            partial = [AIMessage(content=text)] if text else []
            return {"messages": partial, "new_messages": partial, "step": step, "status": FinishReason.CANCELLED}

        if not calls:
            reply = [AIMessage(content=text)]
            return {"messages": reply, "new_messages": reply, "step": step, "status": FinishReason.STOP}

        if step >= self.max_steps:
            logger.warning("Step limit reached with tool calls outstanding", session_id=turn.session_id,
                           step=step, tool_names=[c.name for c in calls])
            partial = [AIMessage(content=text)] if text else []
            return {"messages": partial, "new_messages": partial, "step": step, "status": FinishReason.STEP_LIMIT}

        draft = AIMessage(content=text, tool_calls=[c.to_message_call() for c in calls])
        for call in calls:
            turn.output.write(StreamChunk.tool_call(call.id, call.name, call.args))
        return {"step": step, "calls": calls, "draft": draft, "status": None}

    async def _race_abort(self, work: Awaitable[None], abort: asyncio.Event) -> bool:
        """Run work until it finishes, the abort fires, or the step times out.

        Returns False when aborted. Raises InferenceFailure on timeout and
        re-raises anything the work raised.
        """

        work_task = asyncio.ensure_future(work)
        abort_task = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait(
                {work_task, abort_task},
                timeout=self.inference_timeout,
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            abort_task.cancel()

        if work_task in done:
            work_task.result()
            return True

        work_task.cancel()
        try:
            await work_task
        except asyncio.CancelledError:
            pass

        if abort.is_set():
            return False
        raise InferenceFailure(f"Timed out after {self.inference_timeout}s")

    async def execute_tools_node(self, state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
        turn: TurnContext = config["configurable"]["turn"]
        draft = state["draft"]
        results: List[ToolMessage] = []
        skipped = set()
        status: Optional[FinishReason] = None

        for index, call in enumerate(state["calls"]):
            if turn.abort.is_set():
                skipped.update(c.id for c in state["calls"][index:])
                status = FinishReason.CANCELLED
                break

            if self.registry.requires_confirmation(call.name):
                turn.output.write(StreamChunk.confirmation_required(call.id, call.name, call.args))
                status = FinishReason.AWAITING_CONFIRMATION
                continue

            result = await self.executor.execute(call)
            results.append(result.to_message())
            if turn.abort.is_set():
                logger.info("Turn cancelled during tool execution, result not forwarded",
                            session_id=turn.session_id, tool_name=call.name)
                continue
            turn.output.write(StreamChunk.tool_result(call.id, call.name, result.payload, result.success))

        if status is None and turn.abort.is_set():
            status = FinishReason.CANCELLED

        if skipped:
            draft = without_tool_calls(draft, skipped)
        produced = ([draft] if draft is not None else []) + results
        return {"messages": produced, "new_messages": produced, "calls": [], "draft": None, "status": status}

    def route_after_model(self, state: TurnState) -> Literal["tools", "done"]:
        route = "tools" if state["status"] is None else "done"
        agent_logger.log_step_transition(
            "await_model", "execute_tools" if route == "tools" else "end", state["step"],
            condition=state["status"].value if state["status"] else "tool_calls"
        )
        return route

    def route_after_tools(self, state: TurnState) -> Literal["model", "done"]:
        route = "model" if state["status"] is None else "done"
        agent_logger.log_step_transition(
            "execute_tools", "await_model" if route == "model" else "end", state["step"],
            condition=state["status"].value if state["status"] else "results_ready"
        )
        return route

    @traced("agent_turn")
    async def run_turn(self, messages: List[BaseMessage], turn: TurnContext) -> TurnOutcome:
        """Run the step loop over a resolved history and report what was appended"""

        initial_state: TurnState = {
            "messages": list(messages),
            "new_messages": [],
            "step": 0,
            "calls": [],
            "draft": None,
            "status": None,
        }
        final = await self.workflow.ainvoke(
            initial_state,
            config={
                "recursion_limit": self.max_steps * 2 + 2,
                "configurable": {"turn": turn},
            }
        )

        outcome = TurnOutcome(
            new_messages=final["new_messages"],
            finish_reason=final["status"] or FinishReason.STOP,
            steps=final["step"],
        )
        metrics.increment_counter("turns", tags={"finish_reason": outcome.finish_reason.value})
        logger.info("Turn finished", session_id=turn.session_id, steps=outcome.steps,
                    finish_reason=outcome.finish_reason.value)
        return outcome
