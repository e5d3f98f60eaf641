"""Sandboxed mapping expressions for rule tables.

Rule tables may declare small value-mapping functions::

    {"key": "url.query", "arguments": "value", "body": "'?' + value if value else ''"}

``body`` is a single Python expression. It is parsed with :mod:`ast` and
evaluated by a restricted interpreter: only literals, the declared
arguments, arithmetic, comparisons, boolean logic, conditional
expressions, subscripts and a short list of functions and ``str``
methods are available. Nothing is ever passed to ``eval``.
"""

from __future__ import annotations

import ast
import logging
import operator
from typing import Any, Callable

logger = logging.getLogger("otelbridge.rules")


class ExpressionError(ValueError):
    """Raised when a mapping expression is not valid or not allowed."""


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "str": str,
    "int": int,
    "float": float,
    "len": len,
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "strip": lambda s, chars=None: str(s).strip(chars),
}

_STR_METHODS = frozenset(
    {"lower", "upper", "strip", "startswith", "endswith", "split", "replace"}
)

#: Longest string or tuple a ``*`` repetition may produce.
MAX_REPEAT_LENGTH = 10_000


def _repeat(left: Any, right: Any) -> Any:
    seq, count = (left, right) if isinstance(right, int) else (right, left)
    if isinstance(seq, (str, tuple)) and isinstance(count, int) and len(seq) * count > MAX_REPEAT_LENGTH:
        raise ValueError(f"repetition longer than {MAX_REPEAT_LENGTH}")
    return operator.mul(left, right)


_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: _repeat,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_CMP_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_ALLOWED_NODES = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.BinOp,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.Compare,
    ast.IfExp,
    ast.Subscript,
    ast.Slice,
    ast.Call,
    ast.Attribute,
    ast.Tuple,
    ast.List,
    *_BIN_OPS,
    *_CMP_OPS,
)


def parse_arguments(arguments: str | list[str] | None) -> list[str]:
    """``"a, b"`` or ``["a", "b"]`` -> ``["a", "b"]``."""
    if arguments is None:
        return []
    if isinstance(arguments, str):
        names = [a.strip() for a in arguments.split(",")]
    else:
        names = [str(a).strip() for a in arguments]
    names = [n for n in names if n]
    for name in names:
        if not name.isidentifier():
            raise ExpressionError(f"Invalid argument name {name!r}")
    return names


def _validate(tree: ast.Expression, names: set[str]) -> None:
    method_nodes = {
        id(node.func)
        for node in ast.walk(tree)
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)
    }
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        if isinstance(node, ast.Constant) and not isinstance(node.value, (str, int, float, bool, type(None))):
            raise ExpressionError(f"Unsupported constant {node.value!r}")
        if isinstance(node, ast.Name) and node.id not in names and node.id not in _FUNCTIONS:
            raise ExpressionError(f"Unknown symbol '{node.id}'")
        if isinstance(node, ast.Attribute):
            if id(node) not in method_nodes or node.attr not in _STR_METHODS:
                raise ExpressionError(f"Attribute access '.{node.attr}' is not allowed")
        if isinstance(node, ast.Call):
            if node.keywords:
                raise ExpressionError("Keyword arguments are not allowed")
            if isinstance(node.func, ast.Name) and node.func.id not in _FUNCTIONS:
                raise ExpressionError(f"Call to '{node.func.id}' is not allowed")
            if not isinstance(node.func, (ast.Name, ast.Attribute)):
                raise ExpressionError("Only named functions may be called")


def _eval_node(node: ast.AST, env: dict[str, Any]) -> Any:
    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, ast.Name):
        if node.id in env:
            return env[node.id]
        return _FUNCTIONS[node.id]

    if isinstance(node, (ast.Tuple, ast.List)):
        return tuple(_eval_node(elt, env) for elt in node.elts)

    if isinstance(node, ast.UnaryOp):
        val = _eval_node(node.operand, env)
        if isinstance(node.op, ast.Not):
            return not val
        if isinstance(node.op, ast.USub):
            return -val
        return +val

    if isinstance(node, ast.BinOp):
        return _BIN_OPS[type(node.op)](_eval_node(node.left, env), _eval_node(node.right, env))

    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = _eval_node(value, env)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = _eval_node(value, env)
            if result:
                return result
        return result

    if isinstance(node, ast.Compare):
        left = _eval_node(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval_node(comparator, env)
            if not _CMP_OPS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.IfExp):
        if _eval_node(node.test, env):
            return _eval_node(node.body, env)
        return _eval_node(node.orelse, env)

    if isinstance(node, ast.Subscript):
        target = _eval_node(node.value, env)
        if isinstance(node.slice, ast.Slice):
            s = node.slice
            return target[
                slice(
                    _eval_node(s.lower, env) if s.lower else None,
                    _eval_node(s.upper, env) if s.upper else None,
                    _eval_node(s.step, env) if s.step else None,
                )
            ]
        return target[_eval_node(node.slice, env)]

    if isinstance(node, ast.Call):
        args = [_eval_node(a, env) for a in node.args]
        if isinstance(node.func, ast.Attribute):
            obj = _eval_node(node.func.value, env)
            if not isinstance(obj, str):
                raise TypeError(f"'.{node.func.attr}()' needs a string, got {type(obj).__name__}")
            return getattr(obj, node.func.attr)(*args)
        return _FUNCTIONS[node.func.id](*args)  # type: ignore[attr-defined]

    raise ExpressionError(f"Unsupported expression: {type(node).__name__}")


class CompiledExpression:
    """A validated mapping expression, callable with its declared arguments."""

    def __init__(self, body: str, arguments: str | list[str] | None = None, key: str | None = None) -> None:
        self.key = key
        self.body = body
        self.arguments = parse_arguments(arguments)
        try:
            self._tree = ast.parse(body.strip(), mode="eval")
        except SyntaxError as exc:
            raise ExpressionError(f"Invalid expression for {key!r}: {exc.msg}") from exc
        _validate(self._tree, set(self.arguments))

    def __call__(self, *args: Any) -> Any:
        env = dict(zip(self.arguments, args))
        for name in self.arguments[len(args):]:
            env[name] = None
        try:
            return _eval_node(self._tree.body, env)
        except Exception as exc:
            logger.debug("Mapping expression for %s failed: %s", self.key, exc)
            return None

    def __repr__(self) -> str:
        return f"CompiledExpression(key={self.key!r}, body={self.body!r})"


def compile_expression(body: str, arguments: str | list[str] | None = None, key: str | None = None) -> CompiledExpression:
    """Compile *body*.

    Raises:
        ExpressionError: If the expression cannot be parsed or uses
            anything outside the allowed subset.
    """
    if not isinstance(body, str) or not body.strip():
        raise ExpressionError(f"Empty expression for {key!r}")
    return CompiledExpression(body, arguments, key)
