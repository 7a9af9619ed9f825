"""Base abstractions for query dialects."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ..errors import CompilationError
from ..query import BooleanQuery, Keyword, Operator


class Dialect(ABC):
    """Compiler and renderer pair for one textual query syntax."""

    tag: str

    @abstractmethod
    def compile(self, text: str) -> Keyword | BooleanQuery:
        """Parse ``text`` into a query tree, raising CompilationError on bad input."""

    @abstractmethod
    def render(self, query: Keyword | BooleanQuery) -> str:
        """Render a query tree back into this dialect's syntax."""


class BooleanParser(ABC):
    """
    Recursive-descent parser over a token list.

    Operators bind left to right with equal precedence, as both PubMed and
    Ovid evaluate them. Runs of the same operator flatten into one n-ary node.
    """

    def __init__(self, tokens: Sequence[str]) -> None:
        self.tokens = list(tokens)
        self.pos = 0

    def parse(self) -> Keyword | BooleanQuery:
        if not self.tokens:
            raise CompilationError("empty query")
        node = self.expression()
        if self.pos != len(self.tokens):
            raise CompilationError(f"unexpected token {self.tokens[self.pos]!r}")
        return node

    def peek(self) -> str | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self) -> str:
        token = self.peek()
        if token is None:
            raise CompilationError("unexpected end of query")
        self.pos += 1
        return token

    def expression(self) -> Keyword | BooleanQuery:
        node = self.term()
        chained = False
        while True:
            token = self.peek()
            op = self.operator(token) if token is not None else None
            if op is None:
                return node
            self.advance()
            right = self.term()
            if chained and isinstance(node, BooleanQuery) and node.operator == op:
                node = BooleanQuery(operator=op, children=node.children + (right,))
            else:
                node = BooleanQuery(operator=op, children=(node, right))
                chained = True

    def term(self) -> Keyword | BooleanQuery:
        token = self.peek()
        if token == "(":
            self.advance()
            node = self.expression()
            if self.peek() != ")":
                raise CompilationError("unbalanced parentheses")
            self.advance()
            return self.group(node)
        if token is None or token == ")" or self.operator(token) is not None:
            raise CompilationError(f"expected a term, found {token!r}")
        return self.atom()

    def group(self, node: Keyword | BooleanQuery) -> Keyword | BooleanQuery:
        """Apply any qualifier that follows a closing parenthesis."""
        return node

    @abstractmethod
    def operator(self, token: str) -> Operator | None:
        """Return the boolean operator a token denotes, if any."""

    @abstractmethod
    def atom(self) -> Keyword | BooleanQuery:
        """Consume one atom starting at the current token."""


def render_boolean(
    node: Keyword | BooleanQuery,
    render_keyword,
    *,
    upper: bool,
    nested: bool = False,
) -> str:
    if isinstance(node, Keyword):
        return render_keyword(node)
    op = node.operator.upper() if upper else node.operator
    body = f" {op} ".join(
        render_boolean(child, render_keyword, upper=upper, nested=True)
        for child in node.children
    )
    return f"({body})" if nested else body


__all__ = ["Dialect", "BooleanParser", "render_boolean"]
