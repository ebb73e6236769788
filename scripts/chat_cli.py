#!/usr/bin/env python3
"""
Terminal chat client for the analyst API.

Uploads the given files, streams replies as they arrive and asks before
running any code the assistant proposes.

Run:
    uvicorn analyst.main:app --app-dir backend --port 8000
    python scripts/chat_cli.py data/sales.csv
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.client import (  # noqa: E402
    ConversationSession,
    FileAttachment,
    HttpTransport,
    Message,
    ToolCallStatus,
)


def print_event(message: Message, event: dict) -> None:
    event_type = event.get("type")
    if event_type == "text_delta":
        print(event.get("content", ""), end="", flush=True)
    elif event_type == "tool_call":
        print(f"\n🔧 {event.get('tool')}({event.get('args')}) -> {event.get('result')}")
    elif event_type == "pending_tool_call":
        print(f"\n⏸  {event.get('tool')} is waiting for approval")
    elif event_type == "error":
        print(f"\n❌ {event.get('kind', 'error')}: {event.get('content')}")
    elif event_type == "done":
        print()


def print_execution(result: dict) -> None:
    if result.get("type") == "code_execution_error":
        print(f"❌ Execution failed: {result.get('error')}")
        return
    if result.get("stdout"):
        print(result["stdout"].rstrip())
    if result.get("stderr"):
        print(f"[stderr]\n{result['stderr'].rstrip()}")
    if result.get("error"):
        print(f"❌ {result['error']}")
    for item in result.get("results") or []:
        if item.get("png"):
            print("[chart generated]")
        elif item.get("text"):
            print(item["text"])
    for gf in result.get("generatedFiles") or []:
        print(f"📄 {gf['name']} ({gf['size']} bytes)")


async def review_pending(session: ConversationSession, message: Message) -> None:
    """Prompt for every pending call; approvals may produce further pending calls."""
    while True:
        pending = [i for i, tc in enumerate(message.tool_calls) if tc.status == ToolCallStatus.PENDING]
        if not pending:
            return
        index = pending[0]
        record = message.tool_calls[index]
        print("\n" + "-" * 60)
        print(record.args.get("code", ""))
        print("-" * 60)
        answer = await asyncio.to_thread(input, "Run this code? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            session.reject_tool_call(message.id, index)
            print("Rejected.")
            continue

        print("Running...")
        executed = asyncio.create_task(session.approve_tool_call(message.id, index))
        while record.status != ToolCallStatus.COMPLETED and not executed.done():
            await asyncio.sleep(0.1)
        if record.result is not None:
            print_execution(record.result)
        await executed


async def main() -> int:
    parser = argparse.ArgumentParser(description="Chat with the data analyst agent")
    parser.add_argument("files", nargs="*", type=Path, help="Data files to upload")
    parser.add_argument("--url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()

    async with HttpTransport(args.url) as transport:
        session_id = await transport.create_session()
        session = ConversationSession(transport, session_id=session_id, on_event=print_event)
        print(f"Session: {session_id}")

        if args.files:
            attachments = [FileAttachment.from_bytes(p.name, p.read_bytes()) for p in args.files]
            await session.add_files(attachments)
            for a in attachments:
                shape = a.rich_preview.shape if a.rich_preview else "no preview"
                print(f"📎 {a.name} ({a.size} bytes, {shape})")

        while True:
            try:
                text = await asyncio.to_thread(input, "\nyou> ")
            except (EOFError, KeyboardInterrupt):
                print()
                return 0
            text = text.strip()
            if not text:
                continue
            if text in ("/quit", "/exit"):
                return 0
            if text == "/clear":
                session.clear()
                print("Conversation cleared.")
                continue

            print("assistant> ", end="", flush=True)
            message = await session.send_message(text)
            await review_pending(session, message)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
