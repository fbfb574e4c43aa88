"""Arithmetic expressions over named variables and ordered line references.

Grammar (left-associative, usual precedence)::

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("+" | "-") unary | primary
    primary    := NUMBER | IDENTIFIER | ORDER_REF | "(" expression ")"

``ORDER_REF`` is ``@`` followed by digits (``@10``) and refers to a report
line by its order number. Parsing is memoized on the source text; evaluation
is a pure function of the AST and a flat ``name -> number`` context.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .errors import (
    DivisionByZeroError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ReportEngineError,
    UndefinedReferenceError,
)
from .logging_setup import get_logger
from .models import Outcome, ValidationReport

logger = get_logger(__name__)

TokenType = Literal["number", "variable", "order", "operator"]

_NUMBER_RE = re.compile(r"[0-9]+(?:\.[0-9]+)?")
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_ORDER_RE = re.compile(r"@[0-9]+")
_OPERATORS = "+-*/()"
# Parenthesis and unary-sign nesting accepted by the parser.
MAX_NESTING_DEPTH = 100


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int

    @property
    def end(self) -> int:
        return self.position + len(self.value)


@dataclass(frozen=True)
class NumberNode:
    value: float


@dataclass(frozen=True)
class VariableNode:
    name: str


@dataclass(frozen=True)
class OrderNode:
    name: str


@dataclass(frozen=True)
class UnaryNode:
    operator: Literal["+", "-"]
    operand: "Node"


@dataclass(frozen=True)
class BinaryNode:
    operator: Literal["+", "-", "*", "/"]
    left: "Node"
    right: "Node"


Node = Union[NumberNode, VariableNode, OrderNode, UnaryNode, BinaryNode]


def tokenize(expression: str) -> List[Token]:
    if not isinstance(expression, str) or not expression:
        raise ExpressionSyntaxError("Expression must be a non-empty string")

    tokens: List[Token] = []
    i = 0
    while i < len(expression):
        char = expression[i]
        if char.isspace():
            i += 1
            continue

        match = _NUMBER_RE.match(expression, i)
        if match is not None:
            tokens.append(Token("number", match.group(), i))
            i = match.end()
            continue

        if char == "@":
            match = _ORDER_RE.match(expression, i)
            if match is None:
                raise ExpressionSyntaxError(f"Invalid order reference at position {i}", position=i)
            tokens.append(Token("order", match.group(), i))
            i = match.end()
            continue

        match = _IDENT_RE.match(expression, i)
        if match is not None:
            tokens.append(Token("variable", match.group(), i))
            i = match.end()
            continue

        if char in _OPERATORS:
            tokens.append(Token("operator", char, i))
            i += 1
            continue

        raise ExpressionSyntaxError(f"Unexpected character '{char}' at position {i}", position=i)

    return tokens


class _Parser:
    def __init__(self, tokens: Sequence[Token]):
        self._tokens = tokens
        self._pos = 0
        self._depth = 0

    def _peek(self) -> Optional[Token]:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return None

    def _peek_operator(self, symbols: str) -> Optional[str]:
        token = self._peek()
        if token is not None and token.type == "operator" and token.value in symbols:
            return token.value
        return None

    def _end_position(self) -> int:
        return self._tokens[-1].end if self._tokens else 0

    def parse(self) -> Node:
        node = self._expression()
        trailing = self._peek()
        if trailing is not None:
            raise ExpressionSyntaxError(
                f"Unexpected token '{trailing.value}' at position {trailing.position}",
                position=trailing.position,
            )
        return node

    def _expression(self) -> Node:
        left = self._term()
        while True:
            op = self._peek_operator("+-")
            if op is None:
                return left
            self._pos += 1
            left = BinaryNode(op, left, self._term())  # type: ignore[arg-type]

    def _term(self) -> Node:
        left = self._unary()
        while True:
            op = self._peek_operator("*/")
            if op is None:
                return left
            self._pos += 1
            left = BinaryNode(op, left, self._unary())  # type: ignore[arg-type]

    def _unary(self) -> Node:
        self._depth += 1
        try:
            if self._depth > MAX_NESTING_DEPTH:
                token = self._peek()
                position = token.position if token is not None else self._end_position()
                raise ExpressionSyntaxError(
                    f"Expression nested too deeply at position {position}", position=position
                )
            op = self._peek_operator("+-")
            if op is not None:
                self._pos += 1
                return UnaryNode(op, self._unary())  # type: ignore[arg-type]
            return self._primary()
        finally:
            self._depth -= 1

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            end = self._end_position()
            raise ExpressionSyntaxError(f"Unexpected end of expression at position {end}", position=end)

        if token.type == "number":
            self._pos += 1
            return NumberNode(float(token.value))
        if token.type == "variable":
            self._pos += 1
            return VariableNode(token.value)
        if token.type == "order":
            self._pos += 1
            return OrderNode(token.value)

        if token.value == "(":
            self._pos += 1
            inner = self._expression()
            closing = self._peek()
            if closing is None:
                end = self._end_position()
                raise ExpressionSyntaxError(
                    f"Expected ')' at position {end} but reached end of expression",
                    position=end,
                )
            if closing.value != ")":
                raise ExpressionSyntaxError(
                    f"Expected ')' but found '{closing.value}' at position {closing.position}",
                    position=closing.position,
                )
            self._pos += 1
            return inner

        raise ExpressionSyntaxError(
            f"Unexpected token '{token.value}' at position {token.position}",
            position=token.position,
        )


def parse(tokens: Sequence[Token]) -> Node:
    return _Parser(tokens).parse()


@lru_cache(maxsize=None)
def _parse_cached(expression: str) -> Node:
    return parse(tokenize(expression))


def parse_expression(expression: str) -> Node:
    """Parse source text into an AST, reusing earlier parses of the same text."""
    if not isinstance(expression, str):
        raise ExpressionSyntaxError("Expression must be a non-empty string")
    return _parse_cached(expression)


def clear_parse_cache() -> None:
    _parse_cached.cache_clear()


def _lookup(name: str, context: Mapping[str, Optional[float]]) -> float:
    if name not in context:
        raise UndefinedReferenceError(name)
    value = context[name]
    if value is None:
        raise ExpressionEvaluationError(f"No data for {name}")
    return float(value)


def _apply(operator: str, left: float, right: float) -> float:
    if operator == "+":
        result = left + right
    elif operator == "-":
        result = left - right
    elif operator == "*":
        result = left * right
    elif operator == "/":
        if right == 0:
            raise DivisionByZeroError()
        result = left / right
    else:
        raise ExpressionEvaluationError(f"Unknown operator: {operator}")
    if not math.isfinite(result):
        raise ExpressionEvaluationError(f"Non-finite result for '{operator}' operation")
    return result


def evaluate(node: Node, context: Mapping[str, Optional[float]]) -> float:
    """Evaluate a parsed tree, operands left to right.

    Long operator chains produce deep left-leaning trees, so the walk keeps its own stack.
    """
    values: List[float] = []
    pending: List[Tuple[Node, bool]] = [(node, False)]
    while pending:
        current, expanded = pending.pop()
        if isinstance(current, NumberNode):
            values.append(current.value)
        elif isinstance(current, (VariableNode, OrderNode)):
            values.append(_lookup(current.name, context))
        elif isinstance(current, UnaryNode):
            if not expanded:
                pending.append((current, True))
                pending.append((current.operand, False))
            elif current.operator == "-":
                values.append(-values.pop())
        elif isinstance(current, BinaryNode):
            if not expanded:
                pending.append((current, True))
                pending.append((current.right, False))
                pending.append((current.left, False))
            else:
                right = values.pop()
                left = values.pop()
                values.append(_apply(current.operator, left, right))
        else:
            raise ExpressionEvaluationError(f"Unknown node type: {type(current).__name__}")
    return values.pop()


def evaluate_expression(expression: str, context: Mapping[str, Optional[float]]) -> float:
    return evaluate(parse_expression(expression), context)


def evaluate_expression_safe(
    expression: str, context: Mapping[str, Optional[float]]
) -> Outcome[float]:
    try:
        return Outcome.success(evaluate_expression(expression, context))
    except ReportEngineError as exc:
        logger.debug("expression_evaluation_failed", extra={"expression": expression, "error": str(exc)})
        return Outcome.failure(exc)


def evaluate_expression_with(
    context: Mapping[str, Optional[float]],
) -> Callable[[str], float]:
    def _evaluate(expression: str) -> float:
        return evaluate_expression(expression, context)

    return _evaluate


def _collect_dependencies(node: Node, found: dict) -> None:
    pending: List[Node] = [node]
    while pending:
        current = pending.pop()
        if isinstance(current, (VariableNode, OrderNode)):
            found.setdefault(current.name, None)
        elif isinstance(current, UnaryNode):
            pending.append(current.operand)
        elif isinstance(current, BinaryNode):
            pending.append(current.right)
            pending.append(current.left)


def get_dependencies(expression: str) -> List[str]:
    """Names referenced by an expression, de-duplicated in first-seen order."""
    found: dict = {}
    _collect_dependencies(parse_expression(expression), found)
    return list(found)


def validate_expression(expression: str) -> ValidationReport:
    try:
        parse_expression(expression)
    except ExpressionSyntaxError as exc:
        return ValidationReport.from_errors([str(exc)])
    return ValidationReport(is_valid=True)


def split_dependencies(names: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Partition dependency names into (variables, ordered references)."""
    variables = [n for n in names if not n.startswith("@")]
    orders = [n for n in names if n.startswith("@")]
    return variables, orders
