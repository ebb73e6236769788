"""
Python client for the analyst API: SSE transport and conversation state.
"""

from .transcript import (
    ConversationSession,
    FileAttachment,
    Message,
    MessagePart,
    ToolCallRecord,
    ToolCallStatus,
)
from .transport import FrameParser, HttpTransport, Transport, TransportError

__all__ = [
    "ConversationSession",
    "FileAttachment",
    "FrameParser",
    "HttpTransport",
    "Message",
    "MessagePart",
    "ToolCallRecord",
    "ToolCallStatus",
    "Transport",
    "TransportError",
]
