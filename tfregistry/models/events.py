"""Structured materialization events, keyed by coordinate and stage."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MaterializationStage(str, Enum):
    """Where in the materialization pipeline something happened."""

    LOOKUP = "lookup"
    FETCH = "fetch"
    PACK = "pack"
    UPLOAD = "upload"


class EventOutcome(str, Enum):
    HIT = "hit"
    MISS = "miss"
    OK = "ok"
    FAILED = "failed"


class MaterializationEvent(BaseModel):
    """One stage outcome of one materialization call."""

    model_config = ConfigDict(frozen=True)

    coordinate: str  # "org/name/provider/version"
    key: str
    stage: MaterializationStage
    outcome: EventOutcome
    duration_ms: float = 0.0
    detail: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
