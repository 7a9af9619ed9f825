"""Ovid MEDLINE syntax, inline or as numbered search lines.

Inline::

    exp Diabetes Mellitus/ and insulin.tw.

Numbered::

    1. exp Diabetes Mellitus/
    2. insulin$.tw.
    3. 1 and 2
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from ..errors import CompilationError
from ..query import (
    ABSTRACT,
    ALL_FIELDS,
    MAJOR_MESH_HEADINGS,
    MESH_HEADINGS,
    PUBLICATION_TYPE,
    TITLE,
    BooleanQuery,
    Keyword,
    Operator,
)
from .base import BooleanParser, Dialect, render_boolean

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"[()]|[^\s()]+")
NUMBERED_LINE_RE = re.compile(r"^\s*(\d+)\s*[.)]\s*(.+?)\s*$")
FIELD_SUFFIX_RE = re.compile(r"^(.*?)\.([a-z]{2}(?:,[a-z]{2})*)\.$", re.IGNORECASE)
GROUP_SUFFIX_RE = re.compile(r"^\.([a-z]{2}(?:,[a-z]{2})*)\.$", re.IGNORECASE)
ADJACENCY_RE = re.compile(r"^adj\d*$", re.IGNORECASE)
COMBINE_RE = re.compile(r"^(and|or)/([\d,\-]+)$", re.IGNORECASE)
TRUNCATION_RE = re.compile(r"(?:\$\d*|\*)$")

OPERATORS: dict[str, Operator] = {"and": "and", "or": "or", "not": "not"}

FIELD_CODES: dict[str, tuple[str, ...]] = {
    "ti": (TITLE,),
    "ab": (ABSTRACT,),
    "tw": (TITLE, ABSTRACT),
    "mp": (ALL_FIELDS,),
    "pt": (PUBLICATION_TYPE,),
    "sh": (MESH_HEADINGS,),
}

FIELD_TO_CODE: dict[str, str] = {
    TITLE: "ti",
    ABSTRACT: "ab",
    ALL_FIELDS: "mp",
    PUBLICATION_TYPE: "pt",
}


def tokenize(text: str) -> list[str]:
    return TOKEN_RE.findall(text)


def _expand_range(spec: str) -> list[int]:
    numbers: list[int] = []
    for part in spec.split(","):
        if not part:
            continue
        if "-" in part:
            start, _, end = part.partition("-")
            if not start.isdigit() or not end.isdigit() or int(end) < int(start):
                raise CompilationError(f"bad line range {part!r}")
            numbers.extend(range(int(start), int(end) + 1))
        elif part.isdigit():
            numbers.append(int(part))
        else:
            raise CompilationError(f"bad line reference {part!r}")
    return numbers


def _field_codes(codes: str) -> tuple[str, ...]:
    fields: list[str] = []
    for code in codes.lower().split(","):
        if code not in FIELD_CODES:
            raise CompilationError(f"unknown field code .{code}.")
        fields.extend(FIELD_CODES[code])
    return tuple(fields)


def restrict_fields(
    node: Keyword | BooleanQuery, fields: tuple[str, ...]
) -> Keyword | BooleanQuery:
    """Give every unqualified keyword under ``node`` the given fields."""
    if isinstance(node, Keyword):
        if node.fields != (ALL_FIELDS,):
            return node
        return Keyword.model_validate({**node.model_dump(), "fields": fields})
    return node.model_copy(
        update={"children": tuple(restrict_fields(child, fields) for child in node.children)}
    )


class MedlineParser(BooleanParser):
    def __init__(
        self,
        tokens: Sequence[str],
        lines: dict[int, Keyword | BooleanQuery] | None = None,
    ) -> None:
        super().__init__(tokens)
        self.lines = lines

    def operator(self, token: str) -> Operator | None:
        return OPERATORS.get(token.lower())

    def _reference(self, number: int) -> Keyword | BooleanQuery:
        assert self.lines is not None
        if number not in self.lines:
            raise CompilationError(f"reference to undefined line {number}")
        return self.lines[number]

    @staticmethod
    def _is_adjacency(token: str | None) -> bool:
        return token is not None and ADJACENCY_RE.match(token) is not None

    def _ends_term(self, token: str | None) -> bool:
        return (
            token is None
            or token in ("(", ")")
            or self.operator(token) is not None
            or self._is_adjacency(token)
        )

    def group(self, node: Keyword | BooleanQuery) -> Keyword | BooleanQuery:
        # (a or b).tw. searches every unqualified term of the group in .tw.
        token = self.peek()
        suffix = GROUP_SUFFIX_RE.match(token) if token is not None else None
        if suffix is None:
            return node
        self.advance()
        return restrict_fields(node, _field_codes(suffix.group(1)))

    def atom(self) -> Keyword | BooleanQuery:
        token = self.advance()
        if self.lines is not None:
            if token.isdigit():
                return self._reference(int(token))
            combine = COMBINE_RE.match(token)
            if combine:
                refs = [self._reference(n) for n in _expand_range(combine.group(2))]
                if len(refs) == 1:
                    return refs[0]
                return BooleanQuery(operator=combine.group(1).lower(), children=tuple(refs))

        node = self._phrase(token)
        if not self._is_adjacency(self.peek()):
            return node
        # Proximity is not searchable through esearch; adjN degrades to and,
        # with the trailing field suffix applying to the whole chain.
        parts = [node]
        while self._is_adjacency(self.peek()):
            operator = self.advance()
            if self._ends_term(self.peek()):
                raise CompilationError(f"{operator} without a right-hand term")
            logger.warning("proximity operator %s searched as and", operator)
            parts.append(self._phrase(self.advance()))
        fields = parts[-1].fields
        return BooleanQuery(
            operator="and",
            children=tuple(restrict_fields(part, fields) for part in parts),
        )

    def _phrase(self, token: str) -> Keyword:
        if self._is_adjacency(token):
            raise CompilationError(f"{token} without a left-hand term")
        exploded = False
        if token.lower() == "exp" and not self._ends_term(self.peek()):
            exploded = True
            token = self.advance()

        words = [token]
        while not (words[-1].endswith("/") or FIELD_SUFFIX_RE.match(words[-1])):
            if self._ends_term(self.peek()):
                break
            words.append(self.advance())
        return self._keyword(" ".join(words), exploded)

    def _keyword(self, raw: str, exploded: bool) -> Keyword:
        if raw.endswith("/"):
            text = raw[:-1].strip()
            fields: tuple[str, ...] = (MESH_HEADINGS,)
            if text.startswith("*"):
                text = text[1:].strip()
                fields = (MAJOR_MESH_HEADINGS,)
            if not text:
                raise CompilationError("empty subject heading")
            return Keyword(text=text, fields=fields, exploded=exploded)

        if exploded:
            raise CompilationError(f"exp applies to subject headings only: {raw!r}")
        fields = (ALL_FIELDS,)
        suffix = FIELD_SUFFIX_RE.match(raw)
        text = raw
        if suffix:
            text = suffix.group(1)
            fields = _field_codes(suffix.group(2))
        text = text.strip().strip('"')
        truncated = bool(TRUNCATION_RE.search(text))
        if truncated:
            text = TRUNCATION_RE.sub("", text)
        if not text:
            raise CompilationError(f"empty term in {raw!r}")
        return Keyword(text=text, fields=fields, truncated=truncated)


def render_keyword(keyword: Keyword) -> str:
    fields = set(keyword.fields)
    prefix = "exp " if keyword.exploded else ""
    if fields == {MESH_HEADINGS}:
        return f"{prefix}{keyword.text}/"
    if fields == {MAJOR_MESH_HEADINGS}:
        return f"{prefix}*{keyword.text}/"
    if fields <= set(FIELD_TO_CODE):
        if fields == {TITLE, ABSTRACT}:
            codes = "tw"
        else:
            codes = ",".join(sorted(FIELD_TO_CODE[field] for field in fields))
        text = f"{keyword.text}$" if keyword.truncated else keyword.text
        return f"{text}.{codes}."
    parts = [
        render_keyword(keyword.model_copy(update={"fields": (field,)}))
        for field in keyword.fields
    ]
    return "(" + " or ".join(parts) + ")"


class MedlineDialect(Dialect):
    tag = "medline"

    def compile(self, text: str) -> Keyword | BooleanQuery:
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            raise CompilationError("empty query")
        numbered = [NUMBERED_LINE_RE.match(line) for line in lines]
        if not all(numbered):
            return MedlineParser(tokenize(" ".join(lines))).parse()

        parsed: dict[int, Keyword | BooleanQuery] = {}
        node: Keyword | BooleanQuery | None = None
        for match in numbered:
            assert match is not None
            node = MedlineParser(tokenize(match.group(2)), parsed).parse()
            parsed[int(match.group(1))] = node
        assert node is not None
        return node

    def render(self, query: Keyword | BooleanQuery) -> str:
        return render_boolean(query, render_keyword, upper=False)


__all__ = ["MedlineDialect", "MedlineParser", "render_keyword", "tokenize"]
