"""Facade over the query dialects."""

from __future__ import annotations

from .base import Dialect
from .medline import MedlineDialect
from .pubmed import PubMedDialect
from .registry import DEFAULT_DIALECT, DialectRegistry

__all__ = [
    "Dialect",
    "MedlineDialect",
    "PubMedDialect",
    "DialectRegistry",
    "DEFAULT_DIALECT",
]
