"""
Pydantic models for the HTTP boundary.

Field names follow the wire format used by the browser client (camelCase
where the client sends camelCase), so the models double as documentation of
the request and response shapes.
"""

import base64
import binascii
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .config import MAX_MESSAGE_CHARS, MAX_MESSAGES
from .files import is_safe_file_name


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(default="", max_length=MAX_MESSAGE_CHARS)


class RichPreview(BaseModel):
    """Structural preview of a tabular file, as produced by the preview procedure."""

    fileName: Optional[str] = None
    shape: List[int] = Field(default_factory=lambda: [0, 0])
    columns: List[str] = Field(default_factory=list)
    dtypes: Dict[str, str] = Field(default_factory=dict)
    head: str = ""
    describe: str = ""
    null_counts: Dict[str, int] = Field(default_factory=dict)
    sampled: bool = False

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_as_strings(cls, value):
        # pandas column labels can be ints (headerless files)
        if isinstance(value, list):
            return [str(column) for column in value]
        return value

    @property
    def row_count(self) -> int:
        return self.shape[0] if self.shape else 0

    @property
    def col_count(self) -> int:
        return self.shape[1] if len(self.shape) > 1 else 0


class FileInfo(BaseModel):
    """A file described to the model: uploaded by the user or generated by a run."""

    name: str
    size: int = 0
    preview: Optional[str] = None
    richPreview: Optional[RichPreview] = None
    isGenerated: bool = False
    type: Optional[str] = None


class ExecutionOutput(BaseModel):
    """One structured result of a sandbox run."""

    text: Optional[str] = None
    png: Optional[str] = None
    html: Optional[str] = None


class ToolResultFile(BaseModel):
    name: str
    size: int = 0


class ToolResultPayload(BaseModel):
    """Execution result folded back into the conversation after an approved run."""

    code: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    results: List[ExecutionOutput] = Field(default_factory=list)
    generatedFiles: List[ToolResultFile] = Field(default_factory=list)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    files: Optional[List[FileInfo]] = None
    sessionFiles: Optional[List[FileInfo]] = None
    toolResult: Optional[ToolResultPayload] = None
    sessionId: Optional[str] = None


class UploadFile(BaseModel):
    """A file shipped to the server as base64."""

    name: str
    content: str

    @field_validator("name")
    @classmethod
    def _safe_name(cls, value: str) -> str:
        if not is_safe_file_name(value):
            raise ValueError("Invalid file name")
        return value

    @field_validator("content")
    @classmethod
    def _valid_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("File content must be base64 encoded")
        return value

    def decode(self) -> bytes:
        return base64.b64decode(self.content)


class ExecuteArgs(BaseModel):
    code: str = ""


class ExecuteRequest(BaseModel):
    tool: str
    args: ExecuteArgs = Field(default_factory=ExecuteArgs)
    files: List[UploadFile] = Field(default_factory=list)
    sessionId: Optional[str] = None


class PreviewRequest(BaseModel):
    file: UploadFile
    sessionId: Optional[str] = None


class GeneratedFile(BaseModel):
    name: str
    content: str
    size: int
    richPreview: Optional[RichPreview] = None


class ExecutionResult(BaseModel):
    type: Literal["code_execution"] = "code_execution"
    code: str
    stdout: str = ""
    stderr: str = ""
    results: List[ExecutionOutput] = Field(default_factory=list)
    generatedFiles: List[GeneratedFile] = Field(default_factory=list)
    error: Optional[str] = None


class ExecutionFailure(BaseModel):
    """Returned when the sandbox itself could not be provisioned or driven."""

    type: Literal["code_execution_error"] = "code_execution_error"
    code: str
    error: str


class SessionResponse(BaseModel):
    session_id: str
    created_at: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    e2b_configured: bool
    llm_configured: bool


def to_wire(model: BaseModel) -> Dict[str, Any]:
    """Dump a model the way it is sent to clients (None fields kept)."""
    return model.model_dump(mode="json")
