"""
Tests for the tool registry and the auto-executable tools.
"""

import json
import math
import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.config import get_logs_dir
from analyst.tools import (
    APPROVAL_REQUIRED_TOOLS,
    AUTO_EXECUTABLE_TOOLS,
    CalculationError,
    ToolName,
    evaluate_expression,
    parse_tool_name,
    requires_approval,
    run_auto_tool,
    tool_schemas,
)
from analyst.tools.registry import AUTO_TOOL_HANDLERS


class TestRegistry:
    """Test the closed tool set and its partition."""

    def test_partition_covers_every_tool(self):
        assert AUTO_EXECUTABLE_TOOLS | APPROVAL_REQUIRED_TOOLS == frozenset(ToolName)
        assert AUTO_EXECUTABLE_TOOLS.isdisjoint(APPROVAL_REQUIRED_TOOLS)

    def test_every_auto_tool_has_a_handler(self):
        assert frozenset(AUTO_TOOL_HANDLERS) == AUTO_EXECUTABLE_TOOLS

    def test_only_execute_python_requires_approval(self):
        assert requires_approval("execute_python")
        for name in ("calculate", "search_knowledge", "confirm_action"):
            assert not requires_approval(name)

    def test_unknown_name(self):
        assert parse_tool_name("rm_rf") is None
        assert not requires_approval("rm_rf")

    def test_schemas_use_provider_format(self):
        schemas = tool_schemas()
        assert {s["name"] for s in schemas} == {t.value for t in ToolName}
        for schema in schemas:
            assert set(schema) == {"name", "description", "input_schema"}
            assert schema["input_schema"]["type"] == "object"


class TestCalculator:
    """Test the arithmetic evaluator."""

    @pytest.mark.parametrize("expression,expected", [
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("7 // 2", 3),
        ("7 % 4", 3),
        ("2 ** 10", 1024),
        ("-3 + +5", 2),
        ("abs(-4.5)", 4.5),
        ("round(3.14159, 2)", 3.14),
        ("max(1, 9, 4) - min(3, 2)", 7),
    ])
    def test_arithmetic(self, expression, expected):
        assert evaluate_expression(expression) == expected

    def test_constants(self):
        assert evaluate_expression("pi * 2") == pytest.approx(2 * math.pi)
        assert evaluate_expression("e") == pytest.approx(math.e)

    @pytest.mark.parametrize("expression", [
        "__import__('os').system('ls')",
        "open('/etc/passwd')",
        "x + 1",
        "'a' * 3",
        "[1, 2]",
        "True + 1",
        "abs(x=1)",
        "(lambda: 1)()",
    ])
    def test_rejects_non_arithmetic(self, expression):
        with pytest.raises(CalculationError):
            evaluate_expression(expression)

    def test_division_by_zero(self):
        with pytest.raises(CalculationError):
            evaluate_expression("1 / 0")

    def test_huge_power_is_refused(self):
        with pytest.raises(CalculationError):
            evaluate_expression("9 ** 999999")
        with pytest.raises(CalculationError):
            evaluate_expression("10 ** 999 ** 2")

    def test_product_of_large_powers_is_refused(self):
        with pytest.raises(CalculationError, match="too large"):
            evaluate_expression("9**999*9**999*9**999*9**999*9**999")

    def test_large_result_within_limit(self):
        result = evaluate_expression("9**999*9**999")
        assert result == 9 ** 1998
        assert len(str(result)) < 4300

    def test_complex_result_is_refused(self):
        with pytest.raises(CalculationError):
            evaluate_expression("(-8) ** 0.5")

    def test_syntax_error(self):
        with pytest.raises(CalculationError):
            evaluate_expression("2 +")


class TestAutoTools:
    """Test auto-executable tool results."""

    @pytest.mark.asyncio
    async def test_calculate(self):
        result = await run_auto_tool("calculate", {"expression": "6 * 7"})
        assert result == {"type": "calculation", "expression": "6 * 7", "result": 42}

    @pytest.mark.asyncio
    async def test_calculate_error_is_a_result(self):
        result = await run_auto_tool("calculate", {"expression": "1/0"})
        assert result["type"] == "calculation_error"
        assert result["expression"] == "1/0"
        assert result["error"]

    @pytest.mark.asyncio
    async def test_oversized_product_is_an_error_result(self):
        expression = "9**999*9**999*9**999*9**999*9**999"
        result = await run_auto_tool("calculate", {"expression": expression})
        assert result["type"] == "calculation_error"
        json.dumps(result)

    @pytest.mark.asyncio
    async def test_confirm_action(self):
        result = await run_auto_tool("confirm_action", {"action": "drop", "description": "Drop rows"})
        assert result == {
            "type": "confirmation_required",
            "action": "drop",
            "description": "Drop rows",
            "status": "pending",
        }

    @pytest.mark.asyncio
    async def test_search_knowledge(self):
        result = await run_auto_tool("search_knowledge", {"query": "churn"})
        assert result["type"] == "search_result"
        assert result["query"] == "churn"
        assert result["results"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_an_error_result(self):
        result = await run_auto_tool("delete_everything", {})
        assert result["type"] == "tool_error"
        assert "delete_everything" in result["error"]

    @pytest.mark.asyncio
    async def test_approval_required_tool_is_never_run(self):
        result = await run_auto_tool("execute_python", {"code": "print(1)"})
        assert result["type"] == "tool_error"

    @pytest.mark.asyncio
    async def test_tool_call_is_logged(self):
        await run_auto_tool("calculate", {"expression": "1+1"}, tool_id="t1", session_id="tools-log")
        lines = (get_logs_dir() / "tools-log" / "tool_calls.jsonl").read_text().splitlines()
        entry = json.loads(lines[-1])
        assert entry["tool_id"] == "t1"
        assert entry["success"] is True
