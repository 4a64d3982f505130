"""Pydantic data models shared by the points service.

These models define the HTTP contract of the points service and the records
kept by the in-process result cache. Public JSON keys are camelCase (the
shape the web client consumes) while Python attributes stay snake_case; the
models accept either spelling on input.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_COUNT = 3
MIN_COUNT = 1
MAX_COUNT = 5


def clamp_count(value: Any) -> int:
    """Coerce a client supplied count into the supported [1, 5] range.

    Integers, numeric strings and floats are truncated to an int. Anything
    else (missing, booleans, garbage strings) falls back to the default.
    """
    if value is None or isinstance(value, bool):
        n = DEFAULT_COUNT
    else:
        try:
            n = int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            n = DEFAULT_COUNT
    return min(max(n, MIN_COUNT), MAX_COUNT)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PointsRequest(BaseModel):
    """Request body for ``POST /api/generate``.

    Attributes:
        prompt: The topic to write statements about. Blank prompts are
            rejected by the endpoint with HTTP 400.
        count: Desired number of statements, clamped to [1, 5].
    """

    prompt: Optional[str] = None
    count: int = DEFAULT_COUNT

    @field_validator("count", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_count(value)


class PointsResponse(_CamelModel):
    """Successful generation result."""

    success: bool = True
    topic: str
    requested_count: int
    generated_count: int
    points: List[str]
    generation_time: int = Field(..., description="Pipeline time in ms")
    total_time: int = Field(..., description="Request time in ms")
    cached: bool = False


class ErrorResponse(_CamelModel):
    """Failed generation result (HTTP 500)."""

    success: bool = False
    error: str
    total_time: int


class StatusResponse(_CamelModel):
    """Model readiness and cache statistics for ``GET /api/status``.

    ``status`` is one of ``not_loaded``, ``loading``, ``ready`` or ``error``.
    Cache fields are only populated once the model is ready.
    """

    status: str
    message: str
    cache_size: Optional[int] = None
    cache_hit_rate: Optional[float] = None


class CacheEntry(BaseModel):
    """A memoized point set.

    Owned by ``shared.cache.PointCache``; ``last_used_at`` is refreshed on
    every cache hit and drives LRU eviction.
    """

    points: List[str]
    generation_time_ms: int
    last_used_at: float
    created_at: float


class GenerationOutcome(BaseModel):
    """Result of one pass through the generation pipeline.

    ``strategy`` records the terminal state that produced the points:
    ``structured``, ``hybrid`` (structured plus gap fill), ``padded``
    (generated points topped up with fallbacks) or ``fallback`` (an
    inference call failed; fallbacks only, ``error`` holds the reason).
    """

    points: List[str]
    strategy: str
    error: Optional[str] = None
