"""Arithmetic formulas over named answer fields.

Grammar::

    expr   := term (("+" | "-") term)*
    term   := unary (("*" | "/") unary)*
    unary  := ("+" | "-") unary | atom
    atom   := NUMBER | NAME | "(" expr ")"

Names resolve to numeric answers only. Nothing is ever passed to ``eval``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Union

from ..core.errors import FormulaEvaluationError

_TOKEN_PATTERN = re.compile(
    r"\s*(?:(?P<number>\d+(?:\.\d*)?|\.\d+)|(?P<name>[A-Za-z_][A-Za-z0-9_]*)|(?P<op>[-+*/()]))"
)


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    text: str
    position: int


@dataclass(frozen=True, slots=True)
class Number:
    value: float


@dataclass(frozen=True, slots=True)
class Variable:
    name: str


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, Unary, Binary]


def tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    stripped_end = len(source.rstrip())
    while position < stripped_end:
        match = _TOKEN_PATTERN.match(source, position)
        if match is None:
            raise FormulaEvaluationError(f"Unexpected character {source[position]!r} at {position} in {source!r}")
        kind = match.lastgroup or ""
        tokens.append(_Token(kind=kind, text=match.group(kind), position=match.start(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = tokenize(source)
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise FormulaEvaluationError("Empty formula")
        node = self._expr()
        if self._index != len(self._tokens):
            token = self._tokens[self._index]
            raise FormulaEvaluationError(f"Unexpected {token.text!r} at {token.position} in {self._source!r}")
        return node

    def _peek(self) -> _Token | None:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _take_op(self, *ops: str) -> str | None:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in ops:
            self._index += 1
            return token.text
        return None

    def _expr(self) -> Node:
        node = self._term()
        while (op := self._take_op("+", "-")) is not None:
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while (op := self._take_op("*", "/")) is not None:
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        op = self._take_op("+", "-")
        if op is not None:
            return Unary(op, self._unary())
        return self._atom()

    def _atom(self) -> Node:
        token = self._peek()
        if token is None:
            raise FormulaEvaluationError(f"Unexpected end of formula {self._source!r}")
        if token.kind == "number":
            self._index += 1
            return Number(float(token.text))
        if token.kind == "name":
            self._index += 1
            return Variable(token.text)
        if self._take_op("(") is not None:
            node = self._expr()
            if self._take_op(")") is None:
                raise FormulaEvaluationError(f"Missing ')' in {self._source!r}")
            return node
        raise FormulaEvaluationError(f"Unexpected {token.text!r} at {token.position} in {self._source!r}")


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _walk(node: Node) -> Iterator[str]:
    if isinstance(node, Variable):
        yield node.name
    elif isinstance(node, Unary):
        yield from _walk(node.operand)
    elif isinstance(node, Binary):
        yield from _walk(node.left)
        yield from _walk(node.right)


class Formula:
    """A parsed formula; parse once at rule load, evaluate per answer."""

    __slots__ = ("source", "_root", "variables")

    def __init__(self, source: str) -> None:
        self.source = source
        self._root = _Parser(source).parse()
        self.variables: frozenset[str] = frozenset(_walk(self._root))

    def __repr__(self) -> str:
        return f"Formula({self.source!r})"

    def evaluate(self, context: Mapping[str, Any]) -> float | int:
        missing = sorted(name for name in self.variables if not _is_numeric(context.get(name)))
        if missing:
            raise FormulaEvaluationError(
                f"Formula {self.source!r} has missing or non-numeric variables: {', '.join(missing)}"
            )
        value = self._eval(self._root, context)
        return int(value) if value.is_integer() else value

    def _eval(self, node: Node, context: Mapping[str, Any]) -> float:
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Variable):
            return float(context[node.name])
        if isinstance(node, Unary):
            value = self._eval(node.operand, context)
            return -value if node.op == "-" else value
        left = self._eval(node.left, context)
        right = self._eval(node.right, context)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            raise FormulaEvaluationError(f"Division by zero in {self.source!r}")
        return left / right


def evaluate_formula(source: str, context: Mapping[str, Any]) -> float | int:
    return Formula(source).evaluate(context)
