"""Wire models for the lens streaming protocol."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Shape = Literal["circle", "triangle", "cross"]

# Shape tags distinguish the three families of reported queries.
SHAPE_VARIATION: Shape = "circle"
SHAPE_SELECTION: Shape = "triangle"
SHAPE_ORIGINAL: Shape = "cross"


class LensRequest(BaseModel):
    """One inbound request; ``language`` picks the dialect."""

    model_config = ConfigDict(extra="ignore")

    query: str
    language: str | None = None


class MetricReport(BaseModel):
    precision: float = 0.0
    recall: float = 0.0
    f1: float = 0.0
    num_ret: float = 0.0


class QueryVariation(BaseModel):
    query: str
    shape: Shape
    transformation: str
    num_transformations: int
    precision: float
    recall: float
    f1: float
    num_ret: float


class MessageResponse(BaseModel):
    type: Literal["message"] = "message"
    message: str


class ExecutingResponse(BaseModel):
    type: Literal["executing"] = "executing"
    message: str | None = None
    progress: float = Field(ge=0.0, le=100.0)


class QueriesResponse(BaseModel):
    type: Literal["queries"] = "queries"
    queries: list[QueryVariation]


LensResponse = Union[MessageResponse, ExecutingResponse, QueriesResponse]


__all__ = [
    "Shape",
    "SHAPE_VARIATION",
    "SHAPE_SELECTION",
    "SHAPE_ORIGINAL",
    "LensRequest",
    "MetricReport",
    "QueryVariation",
    "MessageResponse",
    "ExecutingResponse",
    "QueriesResponse",
    "LensResponse",
]
