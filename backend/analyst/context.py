"""
Message context building for the agent.

Turns a chat request into the system prompt and the provider message list:
session file descriptions go into the system prompt, new file descriptions
are appended to the last user message, and an execution result (after an
approved run) is folded in as a final user message.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from .config import SANDBOX_MOUNT_DIR
from .profiling import classify_preview, format_strategy_prompt
from .prompts import (
    EXECUTION_RESULT_HEADER,
    EXECUTION_RESULT_INSTRUCTION,
    SESSION_FILES_HEADER,
    SYSTEM_PROMPT,
)
from .schemas import ChatRequest, FileInfo, ToolResultPayload

logger = logging.getLogger(__name__)


def sandbox_path(name: str) -> str:
    return f"{SANDBOX_MOUNT_DIR}/{name}"


def format_file_context(f: FileInfo) -> str:
    """Describe one file for the model."""
    source_tag = "generated by code execution" if f.isGenerated else "uploaded by user"
    lines = [f"File: {f.name} [{source_tag}] ({f.size} bytes)"]

    rp = f.richPreview
    if rp is not None:
        rows = rp.shape[0] if rp.shape else 0
        cols = rp.shape[1] if len(rp.shape) > 1 else len(rp.columns)
        lines.append(f"Shape: {rows} rows x {cols} columns" + (" (statistics from a sample)" if rp.sampled else ""))
        lines.append(f"Columns: {', '.join(rp.columns)}")
        lines.append("Dtypes:")
        lines.extend(f"  {col}: {dtype}" for col, dtype in rp.dtypes.items())
        lines.append(f"First rows:\n```\n{rp.head}\n```")
        lines.append(f"Summary statistics:\n```\n{rp.describe}\n```")

        nulls = [(col, count) for col, count in rp.null_counts.items() if count > 0]
        if nulls:
            lines.append("Missing values:")
            lines.extend(f"  {col}: {count} nulls" for col, count in nulls)

        classification = classify_preview(rp)
        if classification is not None:
            lines.append(
                format_strategy_prompt(f.name, classification.profile, classification.strategies)
            )
    else:
        preview = f.preview if f.preview else "(no preview available)"
        lines.append(f"Content preview (first lines):\n```\n{preview}\n```")

    lines.append(f"Path in Python code: {sandbox_path(f.name)}")
    return "\n".join(lines)


def effective_session_files(request: ChatRequest) -> List[FileInfo]:
    """``sessionFiles`` when non-empty, otherwise the turn's new ``files``."""
    if request.sessionFiles:
        return list(request.sessionFiles)
    if request.files:
        return list(request.files)
    return []


def build_system_prompt(session_files: Sequence[FileInfo]) -> str:
    if not session_files:
        return SYSTEM_PROMPT
    descriptions = "\n\n".join(format_file_context(f) for f in session_files)
    return f"{SYSTEM_PROMPT}\n\n{SESSION_FILES_HEADER}\n{descriptions}"


def summarize_execution_result(result: ToolResultPayload) -> str:
    """Human-readable summary of an approved run, addressed to the model."""
    parts = []
    if result.code:
        parts.append(f"Executed code:\n```python\n{result.code}\n```")
    if result.stdout:
        parts.append(f"stdout:\n{result.stdout}")
    if result.stderr:
        parts.append(f"stderr:\n{result.stderr}")
    if result.error:
        parts.append(f"Error: {result.error}")

    descriptions = []
    for output in result.results:
        if output.png:
            descriptions.append("[chart generated]")
        elif output.text:
            descriptions.append(output.text)
        elif output.html:
            descriptions.append("[HTML content generated]")
    if descriptions:
        parts.append("Results:\n" + "\n".join(descriptions))

    if result.generatedFiles:
        file_lines = "\n".join(
            f"- {sandbox_path(f.name)} ({f.size} bytes)" for f in result.generatedFiles
        )
        parts.append(
            f"Generated files:\n{file_lines}\n"
            "These files are kept in the session and are available at the paths above "
            "in later executions."
        )

    body = "\n\n".join(parts) if parts else "(no output)"
    return f"{EXECUTION_RESULT_HEADER}\n\n{body}\n\n{EXECUTION_RESULT_INSTRUCTION}"


def build_messages(request: ChatRequest) -> Tuple[str, List[Dict[str, str]]]:
    """
    Build ``(system_prompt, messages)`` for the model.

    Roles other than user/assistant are sent as user; messages with empty
    content are dropped.
    """
    system_prompt = build_system_prompt(effective_session_files(request))

    history = [{"role": m.role, "content": m.content} for m in request.messages]

    if request.files and history and history[-1]["role"] == "user":
        new_context = "".join(f"\n\n{format_file_context(f)}" for f in request.files)
        history[-1]["content"] = history[-1]["content"] + new_context

    messages = []
    for msg in history:
        if not msg["content"].strip():
            continue
        role = msg["role"] if msg["role"] in ("user", "assistant") else "user"
        messages.append({"role": role, "content": msg["content"]})

    if request.toolResult is not None:
        messages.append({"role": "user", "content": summarize_execution_result(request.toolResult)})

    logger.debug(
        f"[{request.sessionId}] Built context: {len(messages)} messages, "
        f"system_len={len(system_prompt)}"
    )
    return system_prompt, messages
