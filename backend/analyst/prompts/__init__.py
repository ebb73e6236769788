"""
Prompt text for the analyst agent.
"""

from .analyst import (
    EXECUTION_RESULT_HEADER,
    EXECUTION_RESULT_INSTRUCTION,
    SESSION_FILES_HEADER,
    SYSTEM_PROMPT,
)

__all__ = [
    "EXECUTION_RESULT_HEADER",
    "EXECUTION_RESULT_INSTRUCTION",
    "SESSION_FILES_HEADER",
    "SYSTEM_PROMPT",
]
