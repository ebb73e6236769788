"""
Policy constants and environment-backed settings.

Environment variables are read at the point of use so that a ``.env`` loaded
by the application entry point (or a test's ``monkeypatch.setenv``) is honored.
"""

import os
from pathlib import Path

# Default model if not specified in environment
DEFAULT_MODEL = "claude-sonnet-4-5"

# Agent loop
MAX_AGENT_ITERATIONS = 15

# Turn request validation
MAX_MESSAGES = 100
MAX_MESSAGE_CHARS = 50_000

# Sandbox execution
SANDBOX_MOUNT_DIR = "/home/user"
MAX_GENERATED_FILE_SIZE = 5 * 1024 * 1024  # 5MB per file
MAX_TOTAL_GENERATED_SIZE = 20 * 1024 * 1024  # 20MB per run
IMAGE_FINGERPRINT_CHARS = 200

# File preview
MAX_PREVIEW_FILE_SIZE = 10 * 1024 * 1024  # 10MB
PREVIEW_HEAD_ROWS = 5
PREVIEW_SAMPLE_ROWS = 1000

PROJECT_ROOT = Path(__file__).parent.parent.parent


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def get_model_name() -> str:
    return os.getenv("CLAUDE_MODEL", DEFAULT_MODEL)


def get_max_tokens() -> int:
    return _env_int("LLM_MAX_TOKENS", 4096)


def get_temperature() -> float:
    return _env_float("LLM_TEMPERATURE", 0.7)


def get_sandbox_template():
    """Return the E2B template name, or None for the provider's default code interpreter."""
    return os.getenv("E2B_TEMPLATE") or None


def get_logs_dir() -> Path:
    configured = os.getenv("ANALYST_LOGS_DIR")
    if configured:
        return Path(configured)
    return PROJECT_ROOT / "logs"


def get_rate_limit_requests() -> int:
    return _env_int("RATE_LIMIT_REQUESTS", 30)


def get_rate_limit_window() -> float:
    return _env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0)


def get_agent_timeout() -> float:
    return _env_float("AGENT_RESPONSE_TIMEOUT", 120.0)


def get_execution_timeout() -> float:
    return _env_float("EXECUTION_TIMEOUT", 60.0)


def is_e2b_configured() -> bool:
    return bool(os.getenv("E2B_API_KEY"))


def is_llm_configured() -> bool:
    return bool(os.getenv("ANTHROPIC_API_KEY"))
