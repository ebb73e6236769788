"""
Tests for the session logger registry.
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst import logging_config
from analyst.config import get_logs_dir
from analyst.logging_config import (
    SESSION_LOG_FILES,
    acquire_session_logger,
    close_session_logger,
    get_session_logger,
    release_session_logger,
    safe_session_dir_name,
    session_logging,
)


class TestRegistry:
    """Test acquiring and releasing session loggers."""

    def test_released_logger_is_closed_and_removed(self):
        slogger = acquire_session_logger("reg-one")
        slogger.log_session("PING", "hello")
        release_session_logger("reg-one")

        assert "reg-one" not in logging_config._session_loggers
        assert slogger.closed
        assert all(f.closed for f in slogger._files.values())
        assert sorted(p.name for p in (get_logs_dir() / "reg-one").iterdir()) == sorted(SESSION_LOG_FILES)
        text = (get_logs_dir() / "reg-one" / "session.log").read_text()
        assert "PING" in text
        assert "SESSION_END" in text

    def test_concurrent_requests_share_one_logger(self):
        first = acquire_session_logger("reg-shared")
        second = acquire_session_logger("reg-shared")
        assert first is second

        release_session_logger("reg-shared")
        assert not first.closed
        assert get_session_logger("reg-shared") is first

        release_session_logger("reg-shared")
        assert first.closed
        assert "reg-shared" not in logging_config._session_refs

    def test_context_manager_releases_on_error(self):
        with pytest.raises(RuntimeError):
            with session_logging("reg-error") as slogger:
                raise RuntimeError("boom")
        assert slogger.closed
        assert logging_config._session_loggers == {}

    def test_many_sessions_do_not_accumulate(self):
        for i in range(50):
            with session_logging(f"reg-{i}") as slogger:
                slogger.log_session("TURN_START", "")
        assert logging_config._session_loggers == {}
        assert logging_config._session_refs == {}

    def test_reopened_session_appends(self):
        with session_logging("reg-again") as slogger:
            slogger.log_session("FIRST", "")
        with session_logging("reg-again") as slogger:
            slogger.log_session("SECOND", "")
        text = (get_logs_dir() / "reg-again" / "session.log").read_text()
        assert text.index("FIRST") < text.index("SECOND")

    def test_close_session_logger(self):
        slogger = acquire_session_logger("reg-close")
        close_session_logger("reg-close")
        assert slogger.closed
        assert "reg-close" not in logging_config._session_refs
        release_session_logger("reg-close")


class TestSessionDirName:
    """Test client-supplied ids used as directory names."""

    def test_unsafe_characters_replaced(self):
        assert safe_session_dir_name("../../etc") == "_.._etc"

    def test_empty_falls_back(self):
        assert safe_session_dir_name("...") == "unknown"
