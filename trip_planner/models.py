from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel


TripType = Literal["car", "bicycle"]

BICYCLE_MAX_DISTANCE_KM = 80.0
CAR_MIN_DISTANCE_KM = 80.0
CAR_MAX_DISTANCE_KM = 300.0


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinate(_CamelModel):
    lat: float
    lng: float
    resolved: bool = True

    @classmethod
    def unresolved(cls) -> "Coordinate":
        return cls(lat=0.0, lng=0.0, resolved=False)


class GeocodingMiss(_CamelModel):
    """A lookup that produced no coordinate. Expected, never raised."""

    place: str
    country: str
    reason: str = "no match"


class DayRoute(_CamelModel):
    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    description: str
    start_place: str
    end_place: str
    start_coord: Coordinate = Field(default_factory=Coordinate.unresolved)
    end_coord: Coordinate = Field(default_factory=Coordinate.unresolved)
    distance_km: float = 0.0
    duration: Optional[str] = None
    points_of_interest: List[str] = Field(default_factory=list)


class JobState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    ERRORED = "errored"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {JobState.COMPLETED, JobState.FAILED, JobState.ERRORED, JobState.ABANDONED}
)


class PollResult(_CamelModel):
    done: bool = False
    faulted: bool = False
    processing: int = 0
    queue_position: Optional[int] = None
    wait_time_seconds: Optional[float] = None
    results: List[str] = Field(default_factory=list)


class ImageJob(_CamelModel):
    id: Optional[str] = None
    state: JobState = JobState.IDLE
    queue_position: Optional[int] = None
    wait_time_seconds: Optional[float] = None
    attempt: int = 0
    submission_retries: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    url: Optional[str] = None
    error: Optional[str] = None


class ImageSummary(_CamelModel):
    status: Literal["completed", "unavailable"]
    url: Optional[str] = None
    id: Optional[str] = None

    @model_serializer(mode="wrap")
    def _drop_missing(self, handler):
        # url and id are left out rather than sent as null
        return {k: v for k, v in handler(self).items() if v is not None}

    @classmethod
    def from_job(cls, job: ImageJob) -> "ImageSummary":
        if job.state is JobState.COMPLETED and job.url:
            return cls(status="completed", url=job.url, id=job.id)
        return cls(status="unavailable", id=job.id)


class TripPlan(_CamelModel):
    routes: List[DayRoute]
    image: ImageSummary
    prompt: str


# --- HTTP payloads ---

class RouteRequest(_CamelModel):
    country: str = Field(..., min_length=1)
    trip_type: TripType


class ImageStatusResponse(_CamelModel):
    status: Literal["completed", "waiting", "failed", "error"]
    url: Optional[str] = None
    queue_position: Optional[int] = None
    wait_time: Optional[float] = None
    message: Optional[str] = None
