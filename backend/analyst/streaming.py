"""
Streaming event emitter.

Translates agent events into the external event sequence consumed by
clients. Event kinds:

- ``text_delta``: incremental prose
- ``tool_call``: a tool finished executing
- ``pending_tool_call``: an approval-required call was requested; the turn halts
- ``error``: the turn failed (``kind`` tells upstream / recursion_limit / timeout / internal apart)
- ``done``: terminal, exactly one per turn, also after an error

Frames are server-sent events: ``data: {json}\\n\\n``.
"""

import asyncio
import json
import logging
import traceback
from typing import Any, AsyncIterator, Dict, Optional, Sequence

from .agent import (
    AnalystAgent,
    ApprovalRequiredEvent,
    TokenEvent,
    ToolCallsEvent,
    ToolExecutedEvent,
)
from .errors import AnalystError
from .logging_config import get_session_logger

logger = logging.getLogger(__name__)

_END = object()


def encode_frame(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


def _to_wire_event(event) -> Optional[Dict[str, Any]]:
    if isinstance(event, TokenEvent):
        return {"type": "text_delta", "content": event.text}
    if isinstance(event, ToolExecutedEvent):
        return {
            "type": "tool_call",
            "id": event.call.id,
            "tool": event.call.name,
            "args": event.call.args,
            "result": event.result,
        }
    if isinstance(event, ApprovalRequiredEvent):
        return {
            "type": "pending_tool_call",
            "id": event.call.id,
            "tool": event.call.name,
            "args": event.call.args,
        }
    # ToolCallsEvent is internal: the wire reports executions, not requests
    return None


def error_event(exc: BaseException) -> Dict[str, Any]:
    if isinstance(exc, AnalystError):
        return {"type": "error", "kind": exc.kind, "content": str(exc)}
    return {"type": "error", "kind": "internal", "content": f"{type(exc).__name__}: {exc}"}


async def stream_turn(
    agent: AnalystAgent,
    system: str,
    messages: Sequence[Dict[str, Any]],
    timeout: Optional[float] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Run one agent turn and yield wire events, always ending with ``done``.

    The whole turn (model calls and the embedded tool loop) shares one
    wall-clock deadline. The deadline only wraps the awaits on the agent, so
    nothing is yielded from inside a timeout scope.
    """
    session_id = agent.session_id
    slogger = get_session_logger(session_id)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout else None

    events = agent.run(system, messages)
    counts = {"text_delta": 0, "tool_call": 0, "pending_tool_call": 0}
    failure: Optional[Dict[str, Any]] = None

    try:
        while True:
            try:
                async with asyncio.timeout_at(deadline):
                    event = await anext(events, _END)
            except TimeoutError:
                logger.warning(f"[{session_id}] Agent turn timed out after {timeout}s")
                slogger.log_error("stream", f"turn timed out after {timeout}s")
                failure = {
                    "type": "error",
                    "kind": "timeout",
                    "content": f"Agent response timed out after {timeout:g} seconds",
                }
                break

            if event is _END:
                break

            if isinstance(event, ToolCallsEvent):
                continue
            wire = _to_wire_event(event)
            if wire is None:
                continue

            counts[wire["type"]] += 1
            if wire["type"] != "text_delta":
                slogger.log_stream_event(wire)
            yield wire

    except Exception as e:
        logger.error(f"[{session_id}] Agent turn failed: {e}", exc_info=True)
        slogger.log_error("agent", f"{type(e).__name__}: {e}", traceback.format_exc())
        failure = error_event(e)

    finally:
        await events.aclose()

    if failure is not None:
        slogger.log_stream_event(failure)
        yield failure

    done = {"type": "done"}
    slogger.log_stream_event(done)
    slogger.log_session(
        "TURN_SUMMARY",
        f"text_deltas={counts['text_delta']}, tool_calls={counts['tool_call']}, "
        f"pending={counts['pending_tool_call']}, error={failure is not None}",
    )
    yield done


async def stream_frames(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    """Encode an event stream as SSE frames."""
    async for event in events:
        yield encode_frame(event)
