"""
Tests for turning chat requests into model context.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.context import (
    build_messages,
    effective_session_files,
    format_file_context,
    summarize_execution_result,
)
from analyst.prompts import SESSION_FILES_HEADER, SYSTEM_PROMPT
from analyst.schemas import ChatRequest, FileInfo, RichPreview, ToolResultPayload


SALES_PREVIEW = RichPreview(
    shape=[500, 3],
    columns=["date", "revenue", "region"],
    dtypes={"date": "datetime64[ns]", "revenue": "float64", "region": "object"},
    head="date revenue region",
    describe="count 500",
    null_counts={"date": 0, "revenue": 4, "region": 0},
)


class TestFileContext:
    """Test per-file descriptions."""

    def test_rich_preview_description(self):
        text = format_file_context(FileInfo(name="sales.csv", size=2048, richPreview=SALES_PREVIEW))
        assert "uploaded by user" in text
        assert "500 rows x 3 columns" in text
        assert "revenue: float64" in text
        assert "revenue: 4 nulls" in text
        assert "date: 0 nulls" not in text
        assert "[Dataset profile: sales.csv]" in text
        assert text.endswith("Path in Python code: /home/user/sales.csv")

    def test_text_preview_fallback(self):
        text = format_file_context(FileInfo(name="notes.txt", size=10, preview="a,b\n1,2"))
        assert "a,b\n1,2" in text
        assert "Dataset profile" not in text
        assert "/home/user/notes.txt" in text

    def test_generated_file_tag(self):
        text = format_file_context(FileInfo(name="out.csv", isGenerated=True))
        assert "generated by code execution" in text


class TestBuildMessages:
    """Test system prompt and message list assembly."""

    def test_session_files_preferred_over_files(self):
        request = ChatRequest(
            messages=[{"role": "user", "content": "hi"}],
            files=[FileInfo(name="new.csv")],
            sessionFiles=[FileInfo(name="old.csv"), FileInfo(name="new.csv")],
        )
        assert [f.name for f in effective_session_files(request)] == ["old.csv", "new.csv"]

    def test_files_used_when_no_session_files(self):
        request = ChatRequest(messages=[{"role": "user", "content": "hi"}], files=[FileInfo(name="a.csv")])
        system, _ = build_messages(request)
        assert SESSION_FILES_HEADER in system
        assert "/home/user/a.csv" in system

    def test_no_files_gives_bare_system_prompt(self):
        system, messages = build_messages(ChatRequest(messages=[{"role": "user", "content": "hi"}]))
        assert system == SYSTEM_PROMPT
        assert messages == [{"role": "user", "content": "hi"}]

    def test_new_files_appended_to_last_user_message(self):
        request = ChatRequest(
            messages=[
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "ok"},
                {"role": "user", "content": "analyse this"},
            ],
            files=[FileInfo(name="sales.csv", richPreview=SALES_PREVIEW)],
        )
        _, messages = build_messages(request)
        assert messages[0]["content"] == "first"
        assert messages[-1]["content"].startswith("analyse this\n\nFile: sales.csv")

    def test_empty_messages_dropped_and_roles_mapped(self):
        request = ChatRequest(messages=[
            {"role": "system", "content": "be brief"},
            {"role": "assistant", "content": "   "},
            {"role": "user", "content": "question"},
        ])
        _, messages = build_messages(request)
        assert messages == [
            {"role": "user", "content": "be brief"},
            {"role": "user", "content": "question"},
        ]

    def test_tool_result_appended_as_final_user_message(self):
        request = ChatRequest(
            messages=[{"role": "user", "content": "plot it"}, {"role": "assistant", "content": "Sure"}],
            toolResult={
                "code": "print(1)",
                "stdout": "1\n",
                "results": [{"png": "iVBOR"}, {"html": "<b>x</b>"}],
                "generatedFiles": [{"name": "chart.png", "size": 1200}],
            },
        )
        _, messages = build_messages(request)
        assert len(messages) == 3
        assert messages[-1]["role"] == "user"
        summary = messages[-1]["content"]
        assert "print(1)" in summary
        assert "[chart generated]" in summary
        assert "[HTML content generated]" in summary
        assert "/home/user/chart.png (1200 bytes)" in summary


class TestExecutionSummary:
    """Test the execution result summary."""

    def test_error_is_reported(self):
        summary = summarize_execution_result(ToolResultPayload(code="1/0", error="ZeroDivisionError: division by zero"))
        assert "Error: ZeroDivisionError: division by zero" in summary

    def test_empty_result(self):
        assert "(no output)" in summarize_execution_result(ToolResultPayload())
