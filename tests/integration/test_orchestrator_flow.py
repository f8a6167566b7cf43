"""Integration tests for the bounded model/tool loop.

Tests for:
- Step cap with a model that always calls tools
- Tool results feeding the next step
- Confirmation-gated tools ending the turn
- Cancellation and inference failure
"""

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from domain.context.context_builder import build_system_prompt
from domain.orchestration.core.main_agent import AgentOrchestrator, TurnContext
from domain.streaming.output_stream import ChunkType, FinishReason, OutputStream
from domain.tool.builtin_tools import build_avatar_tools
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from fakes import AlwaysToolClient, ScriptedInferenceClient, StallingClient, text, tool


@pytest.fixture
def registry(state_store, matcher):
    return ToolRegistry(build_avatar_tools(state_store, matcher))


@pytest.fixture
def make_turn(state_store):
    def factory(abort=None):
        async def system_prompt():
            return build_system_prompt(await state_store.get_full_state())

        return TurnContext(
            session_id="session-1",
            output=OutputStream(),
            abort=abort or asyncio.Event(),
            system_prompt=system_prompt,
        )

    return factory


def orchestrator_for(client, registry, **kwargs):
    return AgentOrchestrator(client, registry, ToolExecutor(registry), **kwargs)


async def collect(turn):
    turn.output.close()
    return [chunk async for chunk in turn.output]


class TestStepLoop:
    """Tests for AgentOrchestrator.run_turn"""

    @pytest.mark.asyncio
    async def test_plain_reply_single_step(self, registry, make_turn):
        client = ScriptedInferenceClient([[text("Hello "), text("there!")]])
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="hey")], turn)

        assert outcome.finish_reason == FinishReason.STOP
        assert outcome.steps == 1
        assert outcome.new_messages == [AIMessage(content="Hello there!")]
        chunks = await collect(turn)
        assert "".join(c.text for c in chunks) == "Hello there!"

    @pytest.mark.asyncio
    async def test_step_cap_with_always_tool_calling_model(self, registry, make_turn):
        """Should invoke the model at most ten times and end with step_limit."""
        client = AlwaysToolClient()
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="loop")], turn)

        assert len(client.requests) == 10
        assert outcome.finish_reason == FinishReason.STEP_LIMIT
        assert outcome.steps == 10

        # Nine rounds of tools ran; the tenth request was not executed
        results = [m for m in outcome.new_messages if isinstance(m, ToolMessage)]
        assert len(results) == 9
        assert outcome.new_messages[-1] == AIMessage(content="step 10 ")

        chunks = await collect(turn)
        assert sum(1 for c in chunks if c.type == ChunkType.TOOL_RESULT) == 9

    @pytest.mark.asyncio
    async def test_configured_step_cap(self, registry, make_turn):
        client = AlwaysToolClient()

        outcome = await orchestrator_for(client, registry, max_steps=3).run_turn(
            [HumanMessage(content="loop")], make_turn()
        )

        assert len(client.requests) == 3
        assert outcome.finish_reason == FinishReason.STEP_LIMIT

    @pytest.mark.asyncio
    async def test_tool_result_reaches_next_step(self, registry, make_turn, state_store):
        """Should execute the requested tool and show its result to the model."""
        client = ScriptedInferenceClient([
            [text("Saving. "), tool("saveMemory", {"type": "preference", "content": "dark mode"}, call_id="c1")],
            [text("Got it!")],
        ])
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="remember")], turn)

        assert outcome.finish_reason == FinishReason.STOP
        assert [type(m) for m in outcome.new_messages] == [AIMessage, ToolMessage, AIMessage]
        second_request = client.requests[1]
        assert isinstance(second_request.messages[-1], ToolMessage)
        assert second_request.messages[-1].tool_call_id == "c1"

        # The prompt is rebuilt each step, so the new memory is visible immediately
        assert "dark mode" not in client.requests[0].system_prompt
        assert "- [preference] dark mode" in second_request.system_prompt
        assert (await state_store.get_full_state()).memories[0].content == "dark mode"

        chunk_types = [c.type for c in await collect(turn)]
        assert chunk_types == [
            ChunkType.TEXT_DELTA, ChunkType.TOOL_CALL, ChunkType.TOOL_RESULT, ChunkType.TEXT_DELTA
        ]

    @pytest.mark.asyncio
    async def test_tool_failure_does_not_stop_loop(self, registry, make_turn):
        client = ScriptedInferenceClient([
            [tool("saveMemory", {"type": "bogus", "content": "x"}, call_id="c1")],
            [text("Sorry, that failed.")],
        ])
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="remember")], turn)

        assert outcome.finish_reason == FinishReason.STOP
        assert outcome.new_messages[1].status == "error"
        failed = [c for c in await collect(turn) if c.type == ChunkType.TOOL_RESULT]
        assert failed[0].success is False

    @pytest.mark.asyncio
    async def test_confirmation_tool_ends_turn(self, registry, make_turn, state_store):
        """Should stop and ask for confirmation instead of running a gated tool."""
        await state_store.save_memory("note", "keep me")
        client = ScriptedInferenceClient([[text("Resetting."), tool("resetAvatar", call_id="c1")]])
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="reset")], turn)

        assert outcome.finish_reason == FinishReason.AWAITING_CONFIRMATION
        assert client.calls == 1
        assert outcome.new_messages[-1].tool_calls[0]["id"] == "c1"
        assert (await state_store.get_full_state()).memories
        confirmations = [c for c in await collect(turn) if c.type == ChunkType.CONFIRMATION_REQUIRED]
        assert confirmations[0].tool_call_id == "c1"

    @pytest.mark.asyncio
    async def test_inference_failure_emits_error(self, registry, make_turn):
        client = ScriptedInferenceClient([[text("partial"), RuntimeError("provider down")]])
        turn = make_turn()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="hi")], turn)

        assert outcome.finish_reason == FinishReason.ERROR
        errors = [c for c in await collect(turn) if c.type == ChunkType.ERROR]
        assert "provider down" in errors[0].error

    @pytest.mark.asyncio
    async def test_inference_timeout(self, registry, make_turn):
        client = StallingClient()
        turn = make_turn()

        outcome = await orchestrator_for(client, registry, inference_timeout=0.05).run_turn(
            [HumanMessage(content="hi")], turn
        )

        assert outcome.finish_reason == FinishReason.ERROR
        assert client.cancelled

    @pytest.mark.asyncio
    async def test_abort_cancels_inflight_inference(self, registry, make_turn):
        """Should stop the model call on abort and keep the partial text."""
        client = StallingClient(prefix="Half a thought")
        abort = asyncio.Event()
        turn = make_turn(abort)
        orchestrator = orchestrator_for(client, registry)

        running = asyncio.ensure_future(orchestrator.run_turn([HumanMessage(content="hi")], turn))
        await client.started.wait()
        abort.set()
        outcome = await running

        assert outcome.finish_reason == FinishReason.CANCELLED
        assert client.cancelled
        assert outcome.new_messages == [AIMessage(content="Half a thought")]

    @pytest.mark.asyncio
    async def test_abort_before_start(self, registry, make_turn):
        abort = asyncio.Event()
        abort.set()
        client = ScriptedInferenceClient()

        outcome = await orchestrator_for(client, registry).run_turn([HumanMessage(content="hi")], make_turn(abort))

        assert outcome.finish_reason == FinishReason.CANCELLED
        assert client.calls == 0
