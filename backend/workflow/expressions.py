"""Sandboxed boolean expression evaluator for connector and condition strings.

Expressions are tokenized and parsed by a small recursive-descent parser
into an immutable AST, then evaluated against a plain namespace mapping.
Nothing is ever handed to ``eval``; only the grammar below is reachable:

    expression := or_expr
    or_expr    := and_expr ( "||" and_expr )*
    and_expr   := comparison ( "&&" comparison )*
    comparison := operand ( ( "==" | "===" | "!=" | "!==" | ">" | ">=" | "<" | "<=" ) operand )?
    operand    := "!" operand | "-" operand | NUMBER | STRING | "true" | "false" | "null" | "undefined"
                | NAME "(" args? ")" | NAME | "(" expression ")"

Names are dotted paths (``applicant.income``, ``output.score``) resolved
against the namespace. Only whitelisted helper functions may be called.
"""

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Sequence

from core.exceptions import ExpressionError


class _Undefined:
    """Marker for a value that could not be resolved."""

    _instance: Optional["_Undefined"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


# ─── Value semantics ──────────────────────────────────────────

def is_truthy(value: Any) -> bool:
    """Truthiness as the condition language defines it.

    Containers are truthy even when empty; only null, false, zero, NaN and
    the empty string are falsy.
    """
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def to_number(value: Any) -> float:
    """Coerce to float; returns NaN when the value is not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if _is_number(left) and _is_number(right):
        return left == right
    if left is None or right is None:
        return left is right
    if type(left) is not type(right):
        return False
    return left == right


def loose_equals(left: Any, right: Any) -> bool:
    if strict_equals(left, right):
        return True
    if left is None or right is None:
        return False
    scalar = (str, int, float, bool)
    if isinstance(left, scalar) and isinstance(right, scalar):
        if isinstance(left, str) and isinstance(right, str):
            return False
        a, b = to_number(left), to_number(right)
        return not (math.isnan(a) or math.isnan(b)) and a == b
    return False


def compare(op: str, left: Any, right: Any) -> bool:
    """Ordering comparison; strings compare lexically, everything else numerically."""
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == ">":
        return a > b
    if op == ">=":
        return a >= b
    if op == "<":
        return a < b
    return a <= b


# ─── Helper functions ─────────────────────────────────────────

def _is_empty(value: Any) -> bool:
    if value is None or value is UNDEFINED:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, str):
        return isinstance(item, str) and item.lower() in container.lower()
    if isinstance(container, (list, tuple)):
        return any(loose_equals(element, item) for element in container)
    if isinstance(container, dict):
        return item in container
    return False


def _between(value: Any, low: Any, high: Any) -> bool:
    return compare(">=", value, low) and compare("<=", value, high)


HELPER_FUNCTIONS: dict[str, tuple[Callable[..., Any], int]] = {
    "isEmpty": (_is_empty, 1),
    "isNotEmpty": (lambda value: not _is_empty(value), 1),
    "contains": (_contains, 2),
    "between": (_between, 3),
}

# Helpers that accept an unresolved variable instead of failing
_LENIENT_HELPERS = frozenset({"isEmpty", "isNotEmpty"})


# ─── Tokenizer ────────────────────────────────────────────────

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!(),\-])
    | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*(?:\.(?:[A-Za-z_$][A-Za-z0-9_$]*|\d+))*)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def _unescape(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if not match:
            raise ExpressionError(
                f"Unexpected character {expression[position]!r} at position {position}",
                expression,
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    tokens.append(Token("eof", "", position))
    return tokens


# ─── AST ──────────────────────────────────────────────────────

class Node:
    def evaluate(self, namespace: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, namespace):
        return self.value


@dataclass(frozen=True)
class Name(Node):
    path: str

    def resolve(self, namespace: Mapping[str, Any]) -> Any:
        return resolve_path(namespace, self.path)

    def evaluate(self, namespace):
        value = self.resolve(namespace)
        if value is UNDEFINED:
            raise ExpressionError(f"Unresolved variable: {self.path}", self.path)
        return value


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, namespace):
        return not is_truthy(self.operand.evaluate(namespace))


@dataclass(frozen=True)
class Negate(Node):
    operand: Node

    def evaluate(self, namespace):
        return -to_number(self.operand.evaluate(namespace))


@dataclass(frozen=True)
class Logical(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, namespace):
        left = is_truthy(self.left.evaluate(namespace))
        if self.op == "&&":
            return left and is_truthy(self.right.evaluate(namespace))
        return left or is_truthy(self.right.evaluate(namespace))


@dataclass(frozen=True)
class Comparison(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, namespace):
        left = self.left.evaluate(namespace)
        right = self.right.evaluate(namespace)
        if self.op == "===":
            return strict_equals(left, right)
        if self.op == "!==":
            return not strict_equals(left, right)
        if self.op == "==":
            return loose_equals(left, right)
        if self.op == "!=":
            return not loose_equals(left, right)
        return compare(self.op, left, right)


@dataclass(frozen=True)
class Call(Node):
    name: str
    args: tuple[Node, ...]

    def evaluate(self, namespace):
        func, _ = HELPER_FUNCTIONS[self.name]
        values = []
        for arg in self.args:
            if self.name in _LENIENT_HELPERS and isinstance(arg, Name):
                values.append(arg.resolve(namespace))
            else:
                values.append(arg.evaluate(namespace))
        return func(*values)


def resolve_path(namespace: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings and sequences."""
    if path in namespace:
        return namespace[path]
    current: Any = namespace
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return UNDEFINED
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return UNDEFINED
            current = current[index]
        else:
            return UNDEFINED
    return current


# ─── Parser ───────────────────────────────────────────────────

_COMPARISON_OPS = frozenset({"==", "===", "!=", "!==", ">", ">=", "<", "<="})


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def accept(self, text: str) -> bool:
        if self.current.kind == "op" and self.current.text == text:
            self.index += 1
            return True
        return False

    def expect(self, text: str) -> None:
        if not self.accept(text):
            self.fail(f"Expected {text!r}")

    def fail(self, message: str):
        token = self.current
        found = token.text or "end of expression"
        raise ExpressionError(
            f"{message} but found {found!r} at position {token.position}",
            self.expression,
        )

    def parse(self) -> Node:
        if self.current.kind == "eof":
            raise ExpressionError("Empty expression", self.expression)
        node = self.parse_or()
        if self.current.kind != "eof":
            self.fail("Expected end of expression")
        return node

    def parse_or(self) -> Node:
        node = self.parse_and()
        while self.accept("||"):
            node = Logical("||", node, self.parse_and())
        return node

    def parse_and(self) -> Node:
        node = self.parse_comparison()
        while self.accept("&&"):
            node = Logical("&&", node, self.parse_comparison())
        return node

    def parse_comparison(self) -> Node:
        left = self.parse_operand()
        token = self.current
        if token.kind == "op" and token.text in _COMPARISON_OPS:
            self.advance()
            return Comparison(token.text, left, self.parse_operand())
        return left

    def parse_operand(self) -> Node:
        """Unary `!` and `-` bind tighter than any comparison."""
        token = self.current
        if token.kind == "op":
            if token.text == "-":
                self.advance()
                return Negate(self.parse_operand())
            if token.text == "(":
                self.advance()
                node = self.parse_or()
                self.expect(")")
                return node
            if token.text == "!":
                self.advance()
                return Not(self.parse_operand())
            self.fail("Expected a value")
        if token.kind == "number":
            self.advance()
            if token.text.isdigit():
                return Literal(int(token.text))
            return Literal(float(token.text))
        if token.kind == "string":
            self.advance()
            return Literal(_unescape(token.text))
        if token.kind == "name":
            self.advance()
            if token.text in _KEYWORDS:
                return Literal(_KEYWORDS[token.text])
            if self.accept("("):
                return self.parse_call(token)
            return Name(token.text)
        self.fail("Expected a value")

    def parse_call(self, token: Token) -> Node:
        if token.text not in HELPER_FUNCTIONS:
            raise ExpressionError(
                f"Unknown function {token.text!r} at position {token.position}",
                self.expression,
            )
        args: list[Node] = []
        if not self.accept(")"):
            args.append(self.parse_or())
            while self.accept(","):
                args.append(self.parse_or())
            self.expect(")")
        _, arity = HELPER_FUNCTIONS[token.text]
        if len(args) != arity:
            raise ExpressionError(
                f"{token.text}() takes {arity} argument(s), got {len(args)}",
                self.expression,
            )
        return Call(token.text, tuple(args))


# ─── Public API ───────────────────────────────────────────────

@dataclass(frozen=True)
class CompiledExpression:
    """A parsed expression, safe to cache and reuse across executions."""

    source: str
    root: Node

    def evaluate(self, namespace: Mapping[str, Any]) -> Any:
        return self.root.evaluate(namespace)

    def evaluate_bool(self, namespace: Mapping[str, Any]) -> bool:
        return is_truthy(self.root.evaluate(namespace))


@lru_cache(maxsize=512)
def compile_expression(expression: str) -> CompiledExpression:
    """Parse an expression string; raises ExpressionError on bad syntax."""
    if not isinstance(expression, str):
        raise ExpressionError(f"Expression must be a string, got {type(expression).__name__}")
    return CompiledExpression(expression, _Parser(expression.strip()).parse())


def evaluate_condition(expression: str, namespace: Mapping[str, Any]) -> bool:
    """Parse (cached) and evaluate a boolean condition.

    Raises:
        ExpressionError: malformed expression or unresolved variable
    """
    return compile_expression(expression).evaluate_bool(namespace)
