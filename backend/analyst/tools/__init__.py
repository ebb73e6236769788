"""
Tool registry: the closed set of capabilities the agent may call.
"""

from .registry import (
    APPROVAL_REQUIRED_TOOLS,
    AUTO_EXECUTABLE_TOOLS,
    CalculationError,
    ToolName,
    ToolSpec,
    evaluate_expression,
    parse_tool_name,
    requires_approval,
    run_auto_tool,
    tool_schemas,
)

__all__ = [
    "APPROVAL_REQUIRED_TOOLS",
    "AUTO_EXECUTABLE_TOOLS",
    "CalculationError",
    "ToolName",
    "ToolSpec",
    "evaluate_expression",
    "parse_tool_name",
    "requires_approval",
    "run_auto_tool",
    "tool_schemas",
]
