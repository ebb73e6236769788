"""
Client-side conversation state.

Rebuilds the assistant transcript from the event stream and drives the
approval flow for ``execute_python``:

    pending --approve--> approved --execution returns--> completed
    pending --reject---> rejected

Each assistant message keeps an ordered list of parts (text runs and tool
calls) plus a flat list of tool-call records. The Nth tool-call part and the
Nth flat entry are the same record object, so approvals addressed by index
update both views at once.
"""

import asyncio
import base64
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..files import guess_mime_type, is_previewable, merge_files_by_name
from ..schemas import RichPreview
from .transport import Transport, TransportError

logger = logging.getLogger(__name__)

TEXT_PREVIEW_CHARS = 1000
GENERATED_FILE_NOTE = "(generated by code execution)"


class ToolCallStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


@dataclass
class ToolCallRecord:
    tool: str
    args: Dict[str, Any]
    status: ToolCallStatus
    result: Optional[Dict[str, Any]] = None
    id: Optional[str] = None


@dataclass
class MessagePart:
    type: str  # "text" or "tool_call"
    text: str = ""
    tool_call: Optional[ToolCallRecord] = None


@dataclass
class FileAttachment:
    """A file known to the conversation: uploaded by the user or generated in the sandbox."""

    name: str
    content: str  # base64
    size: int
    type: str = "application/octet-stream"
    preview: str = ""
    rich_preview: Optional[RichPreview] = None
    is_generated: bool = False
    is_previewing: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "FileAttachment":
        preview = ""
        if guess_mime_type(name).startswith("text/") or name.lower().endswith(".json"):
            preview = data[:TEXT_PREVIEW_CHARS * 4].decode("utf-8", errors="replace")[:TEXT_PREVIEW_CHARS]
        return cls(
            name=name,
            content=base64.b64encode(data).decode(),
            size=len(data),
            type=guess_mime_type(name),
            preview=preview,
        )

    @classmethod
    def from_generated(cls, generated: Dict[str, Any]) -> "FileAttachment":
        rich = generated.get("richPreview")
        return cls(
            name=generated["name"],
            content=generated.get("content", ""),
            size=generated.get("size", 0),
            type=guess_mime_type(generated["name"]),
            preview=GENERATED_FILE_NOTE,
            rich_preview=RichPreview(**rich) if rich else None,
            is_generated=True,
        )

    def to_context(self) -> Dict[str, Any]:
        """File description sent with a chat turn (no content)."""
        return {
            "name": self.name,
            "size": self.size,
            "type": self.type,
            "preview": self.preview,
            "richPreview": self.rich_preview.model_dump() if self.rich_preview else None,
            "isGenerated": self.is_generated,
        }

    def to_upload(self) -> Dict[str, str]:
        return {"name": self.name, "content": self.content}


@dataclass
class Message:
    role: str
    content: str = ""
    files: List[FileAttachment] = field(default_factory=list)
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    parts: List[MessagePart] = field(default_factory=list)
    is_streaming: bool = False
    error: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def text(self) -> str:
        """Concatenation of the streamed text parts."""
        return "".join(p.text for p in self.parts if p.type == "text")

    def append_text(self, text: str) -> None:
        if not text:
            return
        self.content += text
        if self.parts and self.parts[-1].type == "text":
            self.parts[-1].text += text
        else:
            self.parts.append(MessagePart(type="text", text=text))

    def add_tool_call(self, record: ToolCallRecord) -> None:
        self.tool_calls.append(record)
        self.parts.append(MessagePart(type="tool_call", tool_call=record))

    def tool_call_parts(self) -> List[ToolCallRecord]:
        return [p.tool_call for p in self.parts if p.type == "tool_call"]

    def add_error(self, message: str) -> None:
        """Record a failure without discarding what was already streamed."""
        self.error = message
        self.content = f"{self.content}\n\nError: {message}" if self.content else f"Error: {message}"
        self.is_streaming = False

    def apply_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "text_delta":
            self.append_text(event.get("content", ""))
        elif event_type == "tool_call":
            self.add_tool_call(ToolCallRecord(
                tool=event.get("tool", ""),
                args=event.get("args") or {},
                status=ToolCallStatus.COMPLETED,
                result=event.get("result"),
                id=event.get("id"),
            ))
        elif event_type == "pending_tool_call":
            self.add_tool_call(ToolCallRecord(
                tool=event.get("tool", ""),
                args=event.get("args") or {},
                status=ToolCallStatus.PENDING,
                id=event.get("id"),
            ))
        elif event_type == "error":
            self.add_error(event.get("content", "Unknown error"))
        elif event_type == "done":
            self.is_streaming = False
        else:
            logger.debug(f"Ignoring unknown event type: {event_type}")


EventCallback = Callable[[Message, Dict[str, Any]], Optional[Awaitable[None]]]


def _tool_result_context(result: Dict[str, Any]) -> Dict[str, Any]:
    """Execution result as sent back to the model: generated file contents stripped."""
    context = {k: v for k, v in result.items() if k != "generatedFiles"}
    context["generatedFiles"] = [
        {"name": f.get("name", ""), "size": f.get("size", 0)}
        for f in result.get("generatedFiles") or []
    ]
    return context


class ConversationSession:
    """
    One conversation as seen by a client.

    Holds the transcript, files waiting to be sent with the next message and
    the session files available to every sandbox run.
    """

    def __init__(
        self,
        transport: Transport,
        session_id: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.transport = transport
        self.session_id = session_id
        self.on_event = on_event
        self.messages: List[Message] = []
        self.pending_files: List[FileAttachment] = []
        self.session_files: List[FileAttachment] = []
        self.is_loading = False

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    async def _preview(self, attachment: FileAttachment) -> None:
        try:
            response = await self.transport.preview({
                "file": attachment.to_upload(),
                "sessionId": self.session_id,
            })
            if response.get("success") and response.get("preview"):
                attachment.rich_preview = RichPreview(**response["preview"])
            else:
                logger.info(f"[{self.session_id}] No preview for {attachment.name}: {response.get('error')}")
        except Exception as e:
            logger.warning(f"[{self.session_id}] Preview of {attachment.name} failed: {e}")
        finally:
            attachment.is_previewing = False

    async def add_files(self, files: Sequence[FileAttachment]) -> None:
        """Queue files for the next message and preview the tabular ones."""
        to_preview = []
        for attachment in files:
            attachment.is_previewing = is_previewable(attachment.name)
            self.pending_files.append(attachment)
            if attachment.is_previewing:
                to_preview.append(attachment)
        if to_preview:
            await asyncio.gather(*(self._preview(a) for a in to_preview))

    def remove_file(self, file_id: str) -> None:
        self.pending_files = [f for f in self.pending_files if f.id != file_id]

    async def _emit(self, message: Message, event: Dict[str, Any]) -> None:
        if self.on_event is None:
            return
        outcome = self.on_event(message, event)
        if asyncio.iscoroutine(outcome):
            await outcome

    async def _stream_into(self, message: Message, payload: Dict[str, Any], separate: bool = False) -> None:
        """Stream one turn into ``message``; ``separate`` puts a blank line before new text."""
        message.is_streaming = True
        self.is_loading = True
        try:
            async for event in self.transport.stream_chat(payload):
                if separate and event.get("type") == "text_delta" and event.get("content"):
                    message.append_text("\n\n")
                    separate = False
                message.apply_event(event)
                await self._emit(message, event)
        except TransportError as e:
            logger.error(f"[{self.session_id}] Chat stream failed: {e}")
            message.add_error(str(e))
            await self._emit(message, {"type": "error", "kind": "transport", "content": str(e)})
        finally:
            message.is_streaming = False
            self.is_loading = False

    async def send_message(self, content: str) -> Message:
        """Send a user message with the pending files and stream the assistant reply."""
        current_files = list(self.pending_files)
        history = [{"role": m.role, "content": m.content} for m in self.messages]

        self.messages.append(Message(role="user", content=content, files=current_files))
        if current_files:
            self.session_files = merge_files_by_name(self.session_files, current_files)
            self.pending_files = []

        assistant = Message(role="assistant", is_streaming=True)
        self.messages.append(assistant)

        payload = {
            "messages": history + [{"role": "user", "content": content}],
            "files": [f.to_context() for f in current_files] or None,
            "sessionFiles": [f.to_context() for f in self.session_files] or None,
            "sessionId": self.session_id,
        }
        await self._stream_into(assistant, payload)
        return assistant

    async def approve_tool_call(self, message_id: str, index: int) -> bool:
        """
        Approve a pending tool call, run it, and stream the follow-up analysis.

        Returns False when there is nothing to approve (unknown message,
        index out of range or the record is not pending).
        """
        message = self.find_message(message_id)
        if message is None or not 0 <= index < len(message.tool_calls):
            return False
        record = message.tool_calls[index]
        if record.status != ToolCallStatus.PENDING:
            return False

        record.status = ToolCallStatus.APPROVED
        try:
            result = await self.transport.execute({
                "tool": record.tool,
                "args": record.args,
                "files": [f.to_upload() for f in self.session_files],
                "sessionId": self.session_id,
            })
        except TransportError as e:
            logger.error(f"[{self.session_id}] Execution request failed: {e}")
            record.status = ToolCallStatus.COMPLETED
            record.result = {"type": "code_execution_error", "error": str(e)}
            return True

        record.status = ToolCallStatus.COMPLETED
        record.result = result

        generated = [FileAttachment.from_generated(gf) for gf in result.get("generatedFiles") or []]
        if generated:
            self.session_files = merge_files_by_name(self.session_files, generated)

        position = self.messages.index(message)
        history = [{"role": m.role, "content": m.content} for m in self.messages[:position]]
        if message.content:
            history.append({"role": "assistant", "content": message.content})

        payload = {
            "messages": history,
            "toolResult": _tool_result_context(result),
            "sessionFiles": [f.to_context() for f in self.session_files] or None,
            "sessionId": self.session_id,
        }
        await self._stream_into(message, payload, separate=bool(message.content))
        return True

    def reject_tool_call(self, message_id: str, index: int) -> bool:
        message = self.find_message(message_id)
        if message is None or not 0 <= index < len(message.tool_calls):
            return False
        record = message.tool_calls[index]
        if record.status != ToolCallStatus.PENDING:
            return False
        record.status = ToolCallStatus.REJECTED
        return True

    def clear(self) -> None:
        self.messages = []
        self.pending_files = []
        self.session_files = []
