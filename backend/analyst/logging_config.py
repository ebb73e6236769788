"""
Session-scoped logging for the analyst backend.

Each conversation gets its own directory under the logs base directory:
- session.log: Main timeline
- stream.log: Outgoing event frames
- agent.log: Agent state machine transitions
- llm_requests.jsonl: LLM requests (summarized)
- llm_responses.jsonl: LLM responses (summarized)
- tool_calls.jsonl: Auto-executed tool calls
- sandbox.log: Sandbox operations
- errors.log: All errors aggregated
"""

import json
import re
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .config import get_logs_dir

# Session ids come from clients; keep them usable as a directory name
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_.-]")

SESSION_LOG_FILES = (
    "session.log",
    "stream.log",
    "agent.log",
    "llm_requests.jsonl",
    "llm_responses.jsonl",
    "tool_calls.jsonl",
    "sandbox.log",
    "errors.log",
)


def safe_session_dir_name(session_id: str) -> str:
    cleaned = _UNSAFE_ID_CHARS.sub("_", session_id)[:128].strip(".")
    return cleaned or "unknown"


class SessionLogger:
    """Session-scoped logger that writes to multiple files."""

    def __init__(self, session_id: str, base_dir: Optional[Path] = None):
        self.session_id = session_id
        self.session_dir = (base_dir or get_logs_dir()) / safe_session_dir_name(session_id)
        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.start_time = datetime.now(timezone.utc)
        self._lock = threading.Lock()

        self._files = {
            name: open(self.session_dir / name, "a", encoding="utf-8") for name in SESSION_LOG_FILES
        }
        self._session_log = self._files["session.log"]
        self._stream_log = self._files["stream.log"]
        self._agent_log = self._files["agent.log"]
        self._llm_requests = self._files["llm_requests.jsonl"]
        self._llm_responses = self._files["llm_responses.jsonl"]
        self._tool_calls = self._files["tool_calls.jsonl"]
        self._sandbox_log = self._files["sandbox.log"]
        self._errors_log = self._files["errors.log"]

        # Token counters
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.request_count = 0
        self.tool_call_count = 0

        self.log_session("SESSION_START", f"session_id={session_id}")

    def _timestamp(self) -> str:
        """Return current UTC timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    def _write(self, file, tag: str, message: str):
        """Write a tagged log line to a file (thread-safe)."""
        with self._lock:
            file.write(f"[{self._timestamp()}] [{tag}] {message}\n")
            file.flush()

    def _write_json(self, file, data: dict):
        """Write a JSON line to a file (thread-safe)."""
        with self._lock:
            data["timestamp"] = self._timestamp()
            file.write(json.dumps(data, default=str) + "\n")
            file.flush()

    def log_session(self, tag: str, message: str):
        """Log to main session timeline."""
        self._write(self._session_log, tag, message)

    def log_stream_event(self, event: dict):
        """Log an outgoing stream frame (large payloads summarized)."""
        self._write(self._stream_log, "OUT", json.dumps(self._summarize_output(event), default=str))
        self.log_session("STREAM_OUT", f"type={event.get('type', 'unknown')}")

    def log_agent(self, tag: str, message: str):
        """Log agent event (also logs to session timeline)."""
        self._write(self._agent_log, tag, message)
        self.log_session(f"AGENT_{tag}", message)

    def log_llm_request(
        self,
        msg_id: str,
        system_prompt_len: int,
        messages: list,
        tools: list,
        model: str,
    ):
        """Log LLM request details."""
        self.request_count += 1
        data = {
            "msg_id": msg_id,
            "system_prompt_len": system_prompt_len,
            "message_count": len(messages),
            "messages_preview": self._truncate_messages(messages),
            "tools": tools,
            "model": model,
        }
        self._write_json(self._llm_requests, data)
        self.log_session("LLM_REQUEST", f"msg_id={msg_id}, system_len={system_prompt_len}")

    def log_llm_response(
        self,
        msg_id: str,
        stop_reason: Optional[str],
        input_tokens: int,
        output_tokens: int,
        content_blocks: list,
    ):
        """Log LLM response details and update token counters."""
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        data = {
            "msg_id": msg_id,
            "stop_reason": stop_reason,
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
            "content_blocks_count": len(content_blocks),
            "content_blocks_summary": self._summarize_blocks(content_blocks),
        }
        self._write_json(self._llm_responses, data)
        self.log_session(
            "LLM_RESPONSE",
            f"msg_id={msg_id}, tokens_in={input_tokens}, tokens_out={output_tokens}",
        )

    def log_tool_call(
        self,
        tool_id: str,
        tool_name: str,
        input_data: dict,
        duration_ms: float,
        success: bool,
        output: Any,
    ):
        """Log tool call execution details."""
        self.tool_call_count += 1
        data = {
            "tool_id": tool_id,
            "tool_name": tool_name,
            "input": self._sanitize_input(input_data),
            "duration_ms": duration_ms,
            "success": success,
            "output_summary": self._summarize_output(output),
        }
        self._write_json(self._tool_calls, data)
        self.log_session(
            "TOOL_CALL",
            f"tool={tool_name}, success={success}, duration={duration_ms:.0f}ms",
        )

    def log_sandbox(self, tag: str, message: str):
        """Log sandbox operation (also logs to session timeline)."""
        self._write(self._sandbox_log, tag, message)
        self.log_session(f"SANDBOX_{tag}", message)

    def log_error(self, component: str, error: str, traceback: Optional[str] = None):
        """Log error with optional traceback."""
        self._write(self._errors_log, component, error)
        if traceback:
            self._write(self._errors_log, "TRACEBACK", traceback)
        self.log_session("ERROR", f"[{component}] {error[:100]}")

    # Helper methods
    def _truncate_messages(self, messages: list) -> list:
        """Summarize the last 3 messages (role and content length only)."""
        result = []
        for msg in messages[-3:]:
            content = msg.get("content", "")
            result.append({"role": msg.get("role"), "content_len": len(str(content))})
        return result

    def _summarize_blocks(self, blocks: list) -> list:
        """Summarize content blocks for logging."""
        result = []
        for block in blocks:
            block_type = block.get("type", "unknown")
            if block_type == "text":
                text = block.get("text", "")
                result.append({
                    "type": "text",
                    "len": len(text),
                    "preview": text[:100] + "..." if len(text) > 100 else text,
                })
            elif block_type == "tool_use":
                result.append({"type": "tool_use", "name": block.get("name"), "id": block.get("id")})
            elif block_type == "tool_result":
                result.append({"type": "tool_result", "tool_use_id": block.get("tool_use_id")})
            else:
                result.append({"type": block_type})
        return result

    def _sanitize_input(self, input_data: dict) -> dict:
        """Sanitize tool input for logging (code and file contents summarized)."""
        result = {}
        for key, value in input_data.items():
            if key in ("content", "code") and isinstance(value, str) and len(value) > 500:
                result[key] = f"<{len(value)} bytes>"
            else:
                result[key] = value
        return result

    def _summarize_output(self, output: Any) -> Any:
        """Summarize output for logging (truncate large strings and nested payloads)."""
        if isinstance(output, dict):
            return {
                k: (
                    f"<{len(v)} chars>"
                    if isinstance(v, str) and len(v) > 200
                    else self._summarize_output(v) if isinstance(v, (dict, list)) else v
                )
                for k, v in output.items()
            }
        elif isinstance(output, list):
            return [self._summarize_output(item) for item in output[:20]]
        elif isinstance(output, str) and len(output) > 200:
            return f"<{len(output)} chars>"
        return output

    def close(self):
        """Close all log files and write final summary."""
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        self.log_session(
            "SESSION_END",
            f"duration={duration:.1f}s, requests={self.request_count}, "
            f"tools={self.tool_call_count}, tokens_in={self.total_input_tokens}, "
            f"tokens_out={self.total_output_tokens}",
        )

        for f in self._files.values():
            f.close()

    @property
    def closed(self) -> bool:
        return self._session_log.closed


# Global registry of session loggers
_session_loggers: Dict[str, SessionLogger] = {}
# In-flight requests holding each logger
_session_refs: Dict[str, int] = {}
_registry_lock = threading.Lock()


def get_session_logger(session_id: str) -> SessionLogger:
    """Get or create a session logger for the given session ID."""
    with _registry_lock:
        if session_id not in _session_loggers:
            _session_loggers[session_id] = SessionLogger(session_id)
        return _session_loggers[session_id]


def acquire_session_logger(session_id: str) -> SessionLogger:
    """Get the session logger and hold it open until ``release_session_logger``."""
    with _registry_lock:
        if session_id not in _session_loggers:
            _session_loggers[session_id] = SessionLogger(session_id)
        _session_refs[session_id] = _session_refs.get(session_id, 0) + 1
        return _session_loggers[session_id]


def release_session_logger(session_id: str):
    """Drop one hold; the logger is closed when the last request of the session ends."""
    with _registry_lock:
        remaining = _session_refs.get(session_id, 0) - 1
        if remaining > 0:
            _session_refs[session_id] = remaining
            return
        _session_refs.pop(session_id, None)
        slogger = _session_loggers.pop(session_id, None)
    if slogger is not None:
        slogger.close()


@contextmanager
def session_logging(session_id: str) -> Iterator[SessionLogger]:
    """Hold the session logger open for the duration of one request."""
    slogger = acquire_session_logger(session_id)
    try:
        yield slogger
    finally:
        release_session_logger(session_id)


def close_session_logger(session_id: str):
    """Close and remove a session logger."""
    with _registry_lock:
        _session_refs.pop(session_id, None)
        slogger = _session_loggers.pop(session_id, None)
    if slogger is not None:
        slogger.close()


def close_all_session_loggers():
    """Close every open session logger (application shutdown)."""
    with _registry_lock:
        for slogger in _session_loggers.values():
            slogger.close()
        _session_loggers.clear()
        _session_refs.clear()
