"""
Pytest configuration and shared fixtures.
"""

import contextlib
import io
import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.execution import GENERATED_FILES_MARKER, CodeExecutor
from analyst.llm import ModelTurn, TextDelta, ToolInvocation
from analyst.logging_config import close_all_session_loggers
from analyst.preview import PREVIEW_MARKER
from analyst.sandbox_manager import SandboxManager


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path, monkeypatch):
    """Session logs go to a per-test directory."""
    monkeypatch.setenv("ANALYST_LOGS_DIR", str(tmp_path / "logs"))
    yield
    close_all_session_loggers()


# =============================================================================
# Model fakes
# =============================================================================

def make_turn(text: str = "", calls=()) -> ModelTurn:
    """Build a parsed model turn with text and ``(id, name, args)`` tool calls."""
    turn = ModelTurn(text=text, stop_reason="tool_use" if calls else "end_turn")
    if text:
        turn.content_blocks.append({"type": "text", "text": text})
    for call_id, name, args in calls:
        turn.tool_calls.append(ToolInvocation(id=call_id, name=name, args=args))
        turn.content_blocks.append({"type": "tool_use", "id": call_id, "name": name, "input": args})
    return turn


class ScriptedChatModel:
    """
    ChatModel that replays scripted turns.

    Each script entry is ``(deltas, turn)``; the deltas are streamed as
    ``TextDelta`` items before the turn. An exception instance in place of a
    turn is raised after the deltas.
    """

    model_name = "scripted-model"

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    async def stream_turn(self, system, messages, tools):
        self.calls.append({"system": system, "messages": list(messages), "tools": tools})
        if not self.script:
            raise AssertionError("ScriptedChatModel ran out of turns")
        deltas, turn = self.script.pop(0)
        for text in deltas:
            yield TextDelta(text)
        if isinstance(turn, BaseException):
            raise turn
        yield turn


def text_reply(*deltas: str):
    """Script entry for a plain prose reply streamed as ``deltas``."""
    return list(deltas), make_turn("".join(deltas))


@pytest.fixture
def scripted_model():
    return ScriptedChatModel


# =============================================================================
# Sandbox fakes
# =============================================================================

def make_execution(stdout=(), stderr=(), results=(), error=None):
    return SimpleNamespace(
        logs=SimpleNamespace(stdout=list(stdout), stderr=list(stderr)),
        results=[
            SimpleNamespace(text=r.get("text"), png=r.get("png"), html=r.get("html"))
            for r in results
        ],
        error=SimpleNamespace(name=error[0], value=error[1]) if error else None,
    )


PREVIEW_JSON = {
    "shape": [500, 3],
    "columns": ["date", "revenue", "region"],
    "dtypes": {"date": "datetime64[ns]", "revenue": "float64", "region": "object"},
    "head": "         date  revenue region\n0  2024-01-01    100.0  north",
    "describe": "       revenue\ncount    500.0",
    "null_counts": {"date": 0, "revenue": 0, "region": 0},
    "sampled": False,
}


class FakeFiles:
    def __init__(self, sandbox):
        self._sandbox = sandbox

    def write(self, path, content):
        if self._sandbox.fail_writes:
            raise RuntimeError("disk full")
        data = content.encode("utf-8") if isinstance(content, str) else content
        Path(path).write_bytes(data)
        self._sandbox.writes.append(path)

    def list(self, path):
        entries = []
        for p in sorted(Path(path).iterdir()):
            entries.append(SimpleNamespace(name=p.name, type="file" if p.is_file() else "dir"))
        return entries


class FakeSandbox:
    """
    Stands in for ``e2b_code_interpreter.Sandbox`` with ``mount_dir`` on the local disk.

    User code is handled by ``on_run(code, mount_dir)``, which may write files
    into the mount and returns an execution. The generated-file reader script
    really runs; preview scripts answer with ``preview_output`` (or
    ``preview_error``).
    """

    def __init__(self, mount_dir: Path, on_run=None):
        self.sandbox_id = "sbx-fake"
        self.mount_dir = Path(mount_dir)
        self.mount_dir.mkdir(parents=True, exist_ok=True)
        self.files = FakeFiles(self)
        self.on_run = on_run or (lambda code, mount: make_execution(stdout=["ok\n"]))
        self.preview_output = dict(PREVIEW_JSON)
        self.preview_error = None
        self.fail_writes = False
        self.fail_kill = False
        self.writes = []
        self.codes = []
        self.kill_count = 0

    def run_code(self, code, timeout=None):
        self.codes.append(code)
        if code.startswith(GENERATED_FILES_MARKER):
            buffer = io.StringIO()
            with contextlib.redirect_stdout(buffer):
                exec(code, {})
            return make_execution(stdout=[buffer.getvalue()])
        if code.startswith(PREVIEW_MARKER):
            if self.preview_error:
                return make_execution(stderr=["Traceback ..."], error=self.preview_error)
            return make_execution(stdout=[json.dumps(self.preview_output) + "\n"])
        return self.on_run(code, self.mount_dir)

    def kill(self):
        self.kill_count += 1
        if self.fail_kill:
            raise RuntimeError("kill failed")


@pytest.fixture
def mount_dir(tmp_path):
    path = tmp_path / "mount"
    path.mkdir()
    return path


@pytest.fixture
def fake_sandbox(mount_dir):
    return FakeSandbox(mount_dir)


@pytest.fixture
def make_executor(mount_dir):
    """Build a CodeExecutor whose managers hand out ``sandbox`` (or fail to create one)."""

    def factory(sandbox=None, create_error=None):
        def create(template, timeout):
            if create_error is not None:
                raise create_error
            return sandbox

        def manager_factory(session_id):
            return SandboxManager(session_id=session_id, sandbox_factory=create)

        return CodeExecutor(manager_factory=manager_factory, mount_dir=str(mount_dir))

    return factory


# =============================================================================
# Client transport fake
# =============================================================================

class FakeTransport:
    """Records requests and replays scripted chat streams and execute/preview responses."""

    def __init__(self, streams=(), execute_results=(), previews=None):
        self.streams = list(streams)
        self.execute_results = list(execute_results)
        self.previews = previews or {}
        self.chat_payloads = []
        self.execute_payloads = []
        self.preview_payloads = []

    async def stream_chat(self, payload):
        self.chat_payloads.append(payload)
        events = self.streams.pop(0)
        for event in events:
            if isinstance(event, BaseException):
                raise event
            yield event

    async def execute(self, payload):
        self.execute_payloads.append(payload)
        result = self.execute_results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def preview(self, payload):
        self.preview_payloads.append(payload)
        result = self.previews.get(payload["file"]["name"])
        if isinstance(result, BaseException):
            raise result
        return result or {"success": False, "error": "no preview"}
