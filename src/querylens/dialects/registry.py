"""Dialect-tag to compiler/renderer registry."""

from __future__ import annotations

import logging
from typing import Iterable

from .base import Dialect
from .medline import MedlineDialect
from .pubmed import PubMedDialect

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "medline"


class DialectRegistry:
    """Resolve dialect tags to their dialects, falling back to a default entry."""

    def __init__(
        self,
        default: str = DEFAULT_DIALECT,
        overrides: dict[str, Dialect] | None = None,
    ) -> None:
        dialects = self._default_dialects()
        if overrides:
            dialects.update(overrides)
        if default not in dialects:
            raise ValueError(f"default dialect {default!r} is not registered")
        self._dialects: dict[str, Dialect] = dialects
        self.default = default

    def _default_dialects(self) -> dict[str, Dialect]:
        return {
            "medline": MedlineDialect(),
            "pubmed": PubMedDialect(),
        }

    def get_dialect(self, tag: str | None) -> Dialect | None:
        if not tag:
            return None
        return self._dialects.get(tag.lower())

    def resolve(self, tag: str | None) -> tuple[str, Dialect]:
        """Return (tag, dialect); unknown or missing tags resolve to the default."""
        dialect = self.get_dialect(tag)
        if dialect is None:
            if tag:
                logger.info("unknown dialect %r, using %s", tag, self.default)
            return self.default, self._dialects[self.default]
        return tag.lower(), dialect  # type: ignore[union-attr]

    def register_dialect(self, tag: str, dialect: Dialect) -> None:
        self._dialects[tag.lower()] = dialect

    def tags(self) -> Iterable[str]:
        return tuple(self._dialects.keys())
