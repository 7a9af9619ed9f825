"""PubMed search syntax: ``"heart attack"[tiab] AND aspirin[mh]``."""

from __future__ import annotations

import re

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

TOKEN_RE = re.compile(r'"[^"]*"\*?|\[[^\]]*\]|[()]|[^\s()\[\]"]+')

OPERATORS: dict[str, Operator] = {"AND": "and", "OR": "or", "NOT": "not"}

# tag -> (fields, exploded)
PUBMED_TAGS: dict[str, tuple[tuple[str, ...], bool]] = {
    "ti": ((TITLE,), False),
    "title": ((TITLE,), False),
    "ab": ((ABSTRACT,), False),
    "abstract": ((ABSTRACT,), False),
    "tiab": ((TITLE, ABSTRACT), False),
    "title/abstract": ((TITLE, ABSTRACT), False),
    "tw": ((TITLE, ABSTRACT), False),
    "mh": ((MESH_HEADINGS,), True),
    "mesh": ((MESH_HEADINGS,), True),
    "mesh terms": ((MESH_HEADINGS,), True),
    "mh:noexp": ((MESH_HEADINGS,), False),
    "mesh:noexp": ((MESH_HEADINGS,), False),
    "majr": ((MAJOR_MESH_HEADINGS,), True),
    "majr:noexp": ((MAJOR_MESH_HEADINGS,), False),
    "pt": ((PUBLICATION_TYPE,), False),
    "all": ((ALL_FIELDS,), False),
    "all fields": ((ALL_FIELDS,), False),
}

SIMPLE_WORD_RE = re.compile(r"^[\w\-]+$")


def tokenize(text: str) -> list[str]:
    if text.count('"') % 2:
        raise CompilationError("unbalanced quotes")
    tokens: list[str] = []
    last = 0
    for match in TOKEN_RE.finditer(text):
        if text[last : match.start()].strip():
            raise CompilationError(f"unexpected input {text[last:match.start()]!r}")
        tokens.append(match.group())
        last = match.end()
    if text[last:].strip():
        raise CompilationError(f"unexpected input {text[last:]!r}")
    return tokens


class PubMedParser(BooleanParser):
    def operator(self, token: str) -> Operator | None:
        return OPERATORS.get(token)

    def _is_word(self, token: str | None) -> bool:
        if token is None or token in ("(", ")"):
            return False
        if token.startswith("[") or token.startswith('"'):
            return False
        return self.operator(token) is None

    def atom(self) -> Keyword:
        token = self.advance()
        if token.startswith("["):
            raise CompilationError(f"field tag {token} without a term")
        if token.startswith('"'):
            truncated = token.endswith("*")
            text = token.rstrip("*")[1:-1]
        else:
            words = [token]
            while self._is_word(self.peek()):
                words.append(self.advance())
            text = " ".join(words)
            truncated = False
        if text.endswith("*"):
            truncated = True
            text = text.rstrip("*")
        if not text.strip():
            raise CompilationError("empty term")

        fields: tuple[str, ...] = (ALL_FIELDS,)
        exploded = False
        tag_token = self.peek()
        if tag_token is not None and tag_token.startswith("["):
            self.advance()
            tag = " ".join(tag_token[1:-1].lower().split())
            if tag not in PUBMED_TAGS:
                raise CompilationError(f"unknown field tag [{tag}]")
            fields, exploded = PUBMED_TAGS[tag]
        return Keyword(text=text, fields=fields, exploded=exploded, truncated=truncated)


def _tag_for(keyword: Keyword) -> str | None:
    fields = set(keyword.fields)
    if fields == {ALL_FIELDS}:
        return None
    if fields == {TITLE}:
        return "ti"
    if fields == {ABSTRACT}:
        return "ab"
    if fields == {TITLE, ABSTRACT}:
        return "tiab"
    if fields == {MESH_HEADINGS}:
        return "mh" if keyword.exploded else "mh:noexp"
    if fields == {MAJOR_MESH_HEADINGS}:
        return "majr" if keyword.exploded else "majr:noexp"
    if fields == {PUBLICATION_TYPE}:
        return "pt"
    raise KeyError(tuple(sorted(fields)))


def render_keyword(keyword: Keyword) -> str:
    try:
        tag = _tag_for(keyword)
    except KeyError:
        # No single PubMed tag covers this combination: search each field.
        parts = [
            render_keyword(keyword.model_copy(update={"fields": (field,)}))
            for field in keyword.fields
        ]
        return "(" + " OR ".join(parts) + ")"
    text = keyword.text
    if SIMPLE_WORD_RE.match(text) and text.upper() not in OPERATORS:
        term = f"{text}*" if keyword.truncated else text
    else:
        term = f'"{text}*"' if keyword.truncated else f'"{text}"'
    return f"{term}[{tag}]" if tag else term


class PubMedDialect(Dialect):
    tag = "pubmed"

    def compile(self, text: str) -> Keyword | BooleanQuery:
        return PubMedParser(tokenize(text)).parse()

    def render(self, query: Keyword | BooleanQuery) -> str:
        return render_boolean(query, render_keyword, upper=True)


__all__ = ["PubMedDialect", "PubMedParser", "render_keyword", "tokenize", "PUBMED_TAGS"]
