"""Error taxonomy for lens sessions.

Every error ends the session it occurs in; none of them is reported to the
client beyond the socket closing.
"""

from __future__ import annotations


class QueryLensError(Exception):
    """Base class for failures that terminate a lens session."""


class ProtocolError(QueryLensError):
    """Inbound message unreadable or invalid, or a write to the client failed."""


class CompilationError(QueryLensError):
    """Query text does not parse in the requested dialect."""


class ResourceError(QueryLensError):
    """A heavyweight process-wide resource could not be loaded."""


class AdapterError(QueryLensError):
    """An external collaborator failed."""


class GenerationError(AdapterError):
    pass


class RetrievalError(AdapterError):
    pass


class SelectionError(AdapterError):
    pass


__all__ = [
    "QueryLensError",
    "ProtocolError",
    "CompilationError",
    "ResourceError",
    "AdapterError",
    "GenerationError",
    "RetrievalError",
    "SelectionError",
]
