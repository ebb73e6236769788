"""
Tool registry for the analyst agent.

The capability set is closed: ``ToolName`` enumerates every tool the model may
call, and each tool belongs to exactly one partition:

- auto-executable tools run inside the agent loop and their results are fed
  back to the model before the next AGENT step
- approval-required tools are never executed by the agent; the turn halts and
  the call is surfaced to the user (``execute_python``)
"""

import ast
import logging
import math
import operator
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..logging_config import get_session_logger

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    CONFIRM_ACTION = "confirm_action"
    SEARCH_KNOWLEDGE = "search_knowledge"
    CALCULATE = "calculate"
    EXECUTE_PYTHON = "execute_python"


AUTO_EXECUTABLE_TOOLS = frozenset({
    ToolName.CONFIRM_ACTION,
    ToolName.SEARCH_KNOWLEDGE,
    ToolName.CALCULATE,
})
APPROVAL_REQUIRED_TOOLS = frozenset({ToolName.EXECUTE_PYTHON})


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_schema: Dict[str, Any]

    def to_provider_format(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "description": self.description,
            "input_schema": self.input_schema,
        }


TOOL_SPECS = (
    ToolSpec(
        name=ToolName.EXECUTE_PYTHON,
        description=(
            "Execute Python code in a fresh Jupyter sandbox and return the result. "
            "IMPORTANT: each invocation creates a NEW isolated sandbox; variables, imports "
            "and files from previous executions are NOT available. Every code block MUST be "
            "fully self-contained with all imports, file reads (e.g. "
            "pd.read_csv('/home/user/data.csv')) and variable definitions. If a task has "
            "multiple steps, combine them into a single code block. The sandbox has pandas, "
            "numpy, matplotlib, seaborn, scikit-learn and statsmodels pre-installed. "
            "The user must approve the code before it runs."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "code": {
                    "type": "string",
                    "description": (
                        "The complete, self-contained Python code to execute. Must include all "
                        "imports, data loading and variable definitions."
                    ),
                },
            },
            "required": ["code"],
        },
    ),
    ToolSpec(
        name=ToolName.CONFIRM_ACTION,
        description=(
            "When you need user confirmation before performing a potentially dangerous or "
            "important action, use this tool. It will display a confirmation dialog to the user."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "action": {"type": "string", "description": "The action name that needs confirmation"},
                "description": {
                    "type": "string",
                    "description": "A detailed description of what will happen if confirmed",
                },
            },
            "required": ["action", "description"],
        },
    ),
    ToolSpec(
        name=ToolName.SEARCH_KNOWLEDGE,
        description=(
            "Search the knowledge base for relevant information. Use this when the user asks "
            "about specific topics."
        ),
        input_schema={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "The search query"}},
            "required": ["query"],
        },
    ),
    ToolSpec(
        name=ToolName.CALCULATE,
        description=(
            "Perform a mathematical calculation. Supports + - * / // % **, parentheses, "
            "abs, round, min, max and the constants pi and e."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "expression": {"type": "string", "description": "The mathematical expression to evaluate"},
            },
            "required": ["expression"],
        },
    ),
)


def tool_schemas() -> List[Dict[str, Any]]:
    """Tool definitions in the provider's format."""
    return [spec.to_provider_format() for spec in TOOL_SPECS]


def parse_tool_name(name: str) -> Optional[ToolName]:
    try:
        return ToolName(name)
    except ValueError:
        return None


def requires_approval(name: str) -> bool:
    return parse_tool_name(name) in APPROVAL_REQUIRED_TOOLS


# =============================================================================
# Safe arithmetic evaluator
# =============================================================================

MAX_EXPRESSION_LENGTH = 1000
MAX_EXPONENT = 1000
MAX_RESULT_DIGITS = 4300
# Integers past this size cannot be converted to str or serialized as JSON
MAX_RESULT_BITS = int(MAX_RESULT_DIGITS * math.log2(10))

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
_FUNCTIONS = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
}
_CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
}


class CalculationError(ValueError):
    pass


def _eval_node(node: ast.AST):
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise CalculationError("Only numeric literals are allowed")
        return node.value

    if isinstance(node, ast.Name):
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        raise CalculationError(f"Unknown name: {node.id}")

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow):
            if abs(right) > MAX_EXPONENT:
                raise CalculationError(f"Exponent too large (max {MAX_EXPONENT})")
            if abs(left) > 1 and abs(right) * math.log10(abs(left)) > MAX_RESULT_DIGITS:
                raise CalculationError("Result too large")
        result = _BINARY_OPS[type(node.op)](left, right)
        if isinstance(result, int) and result.bit_length() > MAX_RESULT_BITS:
            raise CalculationError("Result too large")
        return result

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise CalculationError("Only abs, round, min and max can be called")
        if node.keywords:
            raise CalculationError("Keyword arguments are not supported")
        args = [_eval_node(arg) for arg in node.args]
        return _FUNCTIONS[node.func.id](*args)

    raise CalculationError(f"Unsupported syntax: {type(node).__name__}")


def evaluate_expression(expression: str):
    """
    Evaluate an arithmetic expression without executing arbitrary code.

    Raises:
        CalculationError: if the expression is not plain arithmetic or cannot
            be evaluated (division by zero, overflow, ...)
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise CalculationError(f"Expression too long (max {MAX_EXPRESSION_LENGTH} characters)")
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError:
        raise CalculationError("Invalid expression")

    try:
        result = _eval_node(tree)
    except (ZeroDivisionError, OverflowError, TypeError, ValueError) as e:
        if isinstance(e, CalculationError):
            raise
        raise CalculationError(str(e) or type(e).__name__)

    # (-8) ** 0.5 is complex in Python
    if not isinstance(result, (int, float)):
        raise CalculationError("Result is not a real number")
    if isinstance(result, float) and not math.isfinite(result):
        raise CalculationError("Result is not a finite number")
    return result


# =============================================================================
# Auto-executable tool handlers
# =============================================================================

async def confirm_action(args: Dict[str, Any]) -> Dict[str, Any]:
    """Signal the UI to render a confirmation dialog."""
    return {
        "type": "confirmation_required",
        "action": args.get("action", ""),
        "description": args.get("description", ""),
        "status": "pending",
    }


async def search_knowledge(args: Dict[str, Any]) -> Dict[str, Any]:
    # Simulated knowledge base
    query = args.get("query", "")
    return {
        "type": "search_result",
        "query": query,
        "results": [
            f"Found relevant information about: {query}",
            "This is a simulated search result from the demo knowledge base.",
        ],
    }


async def calculate(args: Dict[str, Any]) -> Dict[str, Any]:
    expression = str(args.get("expression", ""))
    try:
        result = evaluate_expression(expression)
    except CalculationError as e:
        return {"type": "calculation_error", "expression": expression, "error": str(e)}
    return {"type": "calculation", "expression": expression, "result": result}


ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

AUTO_TOOL_HANDLERS: Dict[ToolName, ToolHandler] = {
    ToolName.CONFIRM_ACTION: confirm_action,
    ToolName.SEARCH_KNOWLEDGE: search_knowledge,
    ToolName.CALCULATE: calculate,
}


async def run_auto_tool(
    name: str,
    args: Dict[str, Any],
    tool_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Execute an auto-executable tool and return its result payload.

    Unknown tools and approval-required tools produce a ``tool_error`` result
    instead of raising, so a confused model cannot crash the loop.
    """
    start_time = time.time()
    slogger = get_session_logger(session_id) if session_id else None
    tool_id = tool_id or f"tool_{int(start_time * 1000)}"

    tool = parse_tool_name(name)
    if tool is None:
        result = {"type": "tool_error", "error": f"Unknown tool: {name}"}
    elif tool not in AUTO_EXECUTABLE_TOOLS:
        result = {"type": "tool_error", "error": f"Tool {name} requires user approval"}
    else:
        logger.info(f"[{session_id}] [TOOL] {name} called: keys={list(args.keys())}")
        result = await AUTO_TOOL_HANDLERS[tool](args)

    success = result.get("type") not in ("tool_error", "calculation_error")
    duration_ms = (time.time() - start_time) * 1000
    if not success:
        logger.warning(f"[{session_id}] [TOOL] {name} failed: {result.get('error')}")

    if slogger:
        slogger.log_tool_call(
            tool_id=tool_id,
            tool_name=name,
            input_data=args,
            duration_ms=duration_ms,
            success=success,
            output=result,
        )
    return result
