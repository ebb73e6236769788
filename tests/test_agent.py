"""
Tests for the AGENT/TOOLS state machine.
"""

import json
import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.agent import (
    AgentState,
    AnalystAgent,
    ApprovalRequiredEvent,
    TokenEvent,
    ToolCallsEvent,
    ToolExecutedEvent,
    route_after_agent,
)
from analyst.errors import AgentIterationLimitError, ModelProviderError
from analyst.llm import ToolInvocation

from conftest import ScriptedChatModel, make_turn, text_reply


async def collect(agent, messages=None):
    return [e async for e in agent.run("system", messages or [{"role": "user", "content": "hi"}])]


class TestRouting:
    """Test the transition rule after an AGENT step."""

    def test_no_calls_ends(self):
        assert route_after_agent([]) is AgentState.END

    def test_safe_calls_go_to_tools(self):
        calls = [ToolInvocation("1", "calculate", {}), ToolInvocation("2", "search_knowledge", {})]
        assert route_after_agent(calls) is AgentState.TOOLS

    def test_any_approval_call_ends(self):
        calls = [ToolInvocation("1", "calculate", {}), ToolInvocation("2", "execute_python", {})]
        assert route_after_agent(calls) is AgentState.END


class TestAgentRun:
    """Test full turns against a scripted model."""

    @pytest.mark.asyncio
    async def test_plain_reply(self):
        model = ScriptedChatModel([text_reply("Hel", "lo")])
        events = await collect(AnalystAgent(model, session_id="agent-plain"))
        assert events == [TokenEvent("Hel"), TokenEvent("lo")]
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_safe_tool_loop(self):
        """Safe calls run and their results are in the history for the next AGENT step."""
        model = ScriptedChatModel([
            (["Let me compute. "], make_turn("Let me compute. ", [("c1", "calculate", {"expression": "6*7"})])),
            text_reply("The answer is 42."),
        ])
        events = await collect(AnalystAgent(model, session_id="agent-loop"))

        kinds = [type(e) for e in events]
        assert kinds == [TokenEvent, ToolCallsEvent, ToolExecutedEvent, TokenEvent]
        executed = events[2]
        assert executed.call.id == "c1"
        assert executed.result == {"type": "calculation", "expression": "6*7", "result": 42}

        second_history = model.calls[1]["messages"]
        assert second_history[-2]["role"] == "assistant"
        assert second_history[-2]["content"][1]["type"] == "tool_use"
        tool_result = second_history[-1]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["tool_use_id"] == "c1"
        assert json.loads(tool_result["content"])["result"] == 42

    @pytest.mark.asyncio
    async def test_approval_call_halts_turn(self):
        model = ScriptedChatModel([
            (["Running code."], make_turn("Running code.", [("p1", "execute_python", {"code": "print(1)"})])),
        ])
        events = await collect(AnalystAgent(model, session_id="agent-halt"))
        assert isinstance(events[-1], ApprovalRequiredEvent)
        assert events[-1].call.args == {"code": "print(1)"}
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_co_requested_safe_calls_are_not_executed(self):
        model = ScriptedChatModel([
            ([], make_turn("", [
                ("c1", "calculate", {"expression": "1+1"}),
                ("p1", "execute_python", {"code": "x"}),
            ])),
        ])
        events = await collect(AnalystAgent(model, session_id="agent-mixed"))
        assert not any(isinstance(e, ToolExecutedEvent) for e in events)
        pending = events[-1]
        assert isinstance(pending, ApprovalRequiredEvent)
        assert pending.call.id == "p1"
        assert [c.id for c in pending.deferred] == ["c1"]

    @pytest.mark.asyncio
    async def test_unknown_tool_gives_error_result(self):
        model = ScriptedChatModel([
            ([], make_turn("", [("u1", "format_disk", {})])),
            text_reply("Sorry."),
        ])
        events = await collect(AnalystAgent(model, session_id="agent-unknown"))
        executed = [e for e in events if isinstance(e, ToolExecutedEvent)]
        assert executed[0].result["type"] == "tool_error"
        tool_result = model.calls[1]["messages"][-1]["content"][0]
        assert tool_result["is_error"] is True

    @pytest.mark.asyncio
    async def test_iteration_limit(self):
        looping = [([], make_turn("", [(f"c{i}", "calculate", {"expression": "1"})])) for i in range(3)]
        agent = AnalystAgent(ScriptedChatModel(looping), session_id="agent-limit", max_iterations=2)
        with pytest.raises(AgentIterationLimitError) as info:
            await collect(agent)
        assert info.value.limit == 2
        assert info.value.kind == "recursion_limit"

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        model = ScriptedChatModel([(["partial"], ModelProviderError("overloaded"))])
        agent = AnalystAgent(model, session_id="agent-upstream")
        received = []
        with pytest.raises(ModelProviderError):
            async for event in agent.run("system", [{"role": "user", "content": "hi"}]):
                received.append(event)
        assert received == [TokenEvent("partial")]

    @pytest.mark.asyncio
    async def test_caller_history_is_not_mutated(self):
        history = [{"role": "user", "content": "hi"}]
        model = ScriptedChatModel([
            ([], make_turn("", [("c1", "calculate", {"expression": "2"})])),
            text_reply("done"),
        ])
        await collect(AnalystAgent(model, session_id="agent-history"), history)
        assert history == [{"role": "user", "content": "hi"}]
