from __future__ import annotations

import ast
import math
import operator

from langchain_core.tools import ToolException, tool

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS = {
    "abs": abs,
    "round": round,
    "sqrt": math.sqrt,
    "min": min,
    "max": max,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}

# Bounds on "**" so nested powers cannot pin the event loop.
_MAX_EXPONENT = 1000
_MAX_RESULT_BITS = 10_000


def _power(base: float | int, exponent: float | int) -> float | int:
    if abs(exponent) > _MAX_EXPONENT:
        raise ToolException(f"Exponent {exponent} is too large")
    if exponent > 1 and abs(base) > 1 and exponent * math.log2(abs(base)) > _MAX_RESULT_BITS:
        raise ToolException("Result of '**' is too large")
    return base**exponent


def _evaluate(node: ast.AST) -> float | int:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow):
            return _power(left, right)
        return _BINARY_OPERATORS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args))
    raise ToolException(f"Unsupported expression element: {ast.dump(node)[:80]}")


def evaluate_expression(expr: str) -> float | int:
    """Evaluate an arithmetic expression without executing arbitrary code."""

    try:
        tree = ast.parse(expr.strip(), mode="eval")
    except SyntaxError as exc:
        raise ToolException(f"Invalid expression '{expr}': {exc.msg}") from exc
    try:
        result = _evaluate(tree)
    except ZeroDivisionError as exc:
        raise ToolException("Division by zero") from exc
    except OverflowError as exc:
        raise ToolException(f"Result of '{expr}' is too large") from exc
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


@tool
def calculator(expr: str) -> str:
    """Evaluate an arithmetic expression such as "2+2" or "sqrt(16) * 3".

    Supports + - * / // % **, parentheses, the constants pi and e, and the
    functions abs, round, sqrt, min and max.
    """

    return str(evaluate_expression(expr))
