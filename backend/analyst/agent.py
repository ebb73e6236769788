#!/usr/bin/env python3
"""
AnalystAgent - AGENT/TOOLS state machine with human-in-the-loop code execution.

```
START -> AGENT -+- (no tool calls)              -> END
                +- (any approval-required call) -> END  (awaiting approval)
                +- (only safe tool calls)       -> TOOLS -> AGENT
```

- AGENT invokes the model with the full history and tool schemas, exposing
  prose tokens as they stream and the parsed tool calls as one atomic event.
- TOOLS auto-executes every safe call from the last AGENT step and appends the
  results to the history before the next AGENT step.
- An approval-required call halts the whole turn: co-requested safe calls in
  the same model turn are not executed.

The number of AGENT steps per turn is bounded; exceeding the bound raises
``AgentIterationLimitError`` instead of truncating the turn.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from .config import MAX_AGENT_ITERATIONS
from .errors import AgentIterationLimitError, ModelProviderError
from .llm import ChatModel, ModelTurn, TextDelta, ToolInvocation
from .logging_config import get_session_logger
from .tools import requires_approval, run_auto_tool, tool_schemas

logger = logging.getLogger(__name__)


class AgentState(Enum):
    AGENT = "agent"
    TOOLS = "tools"
    END = "end"


def route_after_agent(tool_calls: Sequence[ToolInvocation]) -> AgentState:
    """Transition rule applied after every AGENT step."""
    if not tool_calls:
        return AgentState.END
    if any(requires_approval(call.name) for call in tool_calls):
        return AgentState.END
    return AgentState.TOOLS


# =============================================================================
# Agent events
# =============================================================================

@dataclass(frozen=True)
class TokenEvent:
    """Incremental prose from the model."""
    text: str


@dataclass(frozen=True)
class ToolCallsEvent:
    """All tool calls of one AGENT step, emitted once the model turn is parsed."""
    calls: Tuple[ToolInvocation, ...]


@dataclass(frozen=True)
class ToolExecutedEvent:
    """A safe tool finished executing inside the TOOLS step."""
    call: ToolInvocation
    result: Dict[str, Any]


@dataclass(frozen=True)
class ApprovalRequiredEvent:
    """The turn halts: ``call`` needs user approval. ``deferred`` calls were not run."""
    call: ToolInvocation
    deferred: Tuple[ToolInvocation, ...] = ()


AgentEvent = Union[TokenEvent, ToolCallsEvent, ToolExecutedEvent, ApprovalRequiredEvent]


def tool_result_block(call: ToolInvocation, result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": call.id,
        "content": json.dumps(result, ensure_ascii=False, default=str),
        "is_error": result.get("type") == "tool_error",
    }


class AnalystAgent:
    """
    Runs one conversation turn through the AGENT/TOOLS loop.

    The agent is stateless between turns: every turn gets the full history
    from the caller, so one instance can serve many turns of one session.
    """

    def __init__(
        self,
        model: ChatModel,
        session_id: Optional[str] = None,
        max_iterations: int = MAX_AGENT_ITERATIONS,
    ):
        """
        Args:
            model: LLM collaborator implementing ``ChatModel``
            session_id: Conversation id used for logging context
            max_iterations: Maximum number of AGENT steps per turn
        """
        self.model = model
        self.session_id = session_id or "unknown"
        self.max_iterations = max_iterations
        self.slogger = get_session_logger(self.session_id)

    async def _agent_step(
        self, system: str, messages: List[Dict[str, Any]], msg_id: str
    ) -> AsyncIterator[Union[TokenEvent, ModelTurn]]:
        tools = tool_schemas()
        self.slogger.log_llm_request(
            msg_id=msg_id,
            system_prompt_len=len(system),
            messages=messages,
            tools=[t["name"] for t in tools],
            model=getattr(self.model, "model_name", "unknown"),
        )

        turn: Optional[ModelTurn] = None
        async for item in self.model.stream_turn(system, messages, tools):
            if isinstance(item, TextDelta):
                if item.text:
                    yield TokenEvent(item.text)
            else:
                turn = item

        if turn is None:
            raise ModelProviderError("Model stream ended without a final message")

        self.slogger.log_llm_response(
            msg_id=msg_id,
            stop_reason=turn.stop_reason,
            input_tokens=turn.input_tokens,
            output_tokens=turn.output_tokens,
            content_blocks=turn.content_blocks,
        )
        yield turn

    async def run(self, system: str, messages: Sequence[Dict[str, Any]]) -> AsyncIterator[AgentEvent]:
        """
        Run one turn and yield agent events in emission order.

        Raises:
            AgentIterationLimitError: if the loop needs more than ``max_iterations`` AGENT steps
            ModelProviderError: if the model call fails
        """
        history: List[Dict[str, Any]] = list(messages)
        turn_id = f"turn_{int(time.time() * 1000)}"
        state = AgentState.AGENT
        iterations = 0
        last_turn: Optional[ModelTurn] = None

        self.slogger.log_agent("TURN_START", f"turn_id={turn_id}, messages={len(history)}")
        logger.info(f"[{self.session_id}] Agent turn started ({len(history)} messages)")

        while state is not AgentState.END:
            if state is AgentState.AGENT:
                iterations += 1
                if iterations > self.max_iterations:
                    self.slogger.log_agent("ITERATION_LIMIT", f"limit={self.max_iterations}")
                    logger.warning(f"[{self.session_id}] Agent exceeded {self.max_iterations} iterations")
                    raise AgentIterationLimitError(self.max_iterations)

                self.slogger.log_agent("STATE", f"AGENT iteration={iterations}")
                last_turn = None
                async for item in self._agent_step(system, history, f"{turn_id}_{iterations}"):
                    if isinstance(item, TokenEvent):
                        yield item
                    else:
                        last_turn = item

                calls = tuple(last_turn.tool_calls)
                if calls:
                    self.slogger.log_agent(
                        "TOOL_CALLS", ", ".join(f"{c.name}#{c.id}" for c in calls)
                    )
                    yield ToolCallsEvent(calls)

                state = route_after_agent(calls)
                if state is AgentState.END and calls:
                    pending = next(c for c in calls if requires_approval(c.name))
                    deferred = tuple(c for c in calls if c is not pending)
                    if deferred:
                        logger.info(
                            f"[{self.session_id}] Not executing {len(deferred)} co-requested "
                            f"tool call(s) while {pending.name} awaits approval"
                        )
                    self.slogger.log_agent(
                        "APPROVAL_REQUIRED", f"tool={pending.name}, id={pending.id}, deferred={len(deferred)}"
                    )
                    yield ApprovalRequiredEvent(pending, deferred)

            elif state is AgentState.TOOLS:
                self.slogger.log_agent("STATE", f"TOOLS calls={len(last_turn.tool_calls)}")
                history.append({"role": "assistant", "content": last_turn.content_blocks})

                result_blocks = []
                for call in last_turn.tool_calls:
                    result = await run_auto_tool(
                        call.name, call.args, tool_id=call.id, session_id=self.session_id
                    )
                    result_blocks.append(tool_result_block(call, result))
                    yield ToolExecutedEvent(call, result)

                # Results are in the history before the next AGENT step starts
                history.append({"role": "user", "content": result_blocks})
                state = AgentState.AGENT

        self.slogger.log_agent("TURN_END", f"turn_id={turn_id}, iterations={iterations}")
        logger.info(f"[{self.session_id}] Agent turn finished after {iterations} iteration(s)")
