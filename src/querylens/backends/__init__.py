"""Facade over retrieval backend implementations."""

from __future__ import annotations

from .base import HttpRetrievalBackend, RetrievalBackend
from .entrez import EntrezBackend

__all__ = [
    "RetrievalBackend",
    "HttpRetrievalBackend",
    "EntrezBackend",
]
