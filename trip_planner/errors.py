"""Error taxonomy for the trip planning pipeline.

Fatal errors (``GenerationError``, ``ParseError``) fail the request. The image
job errors are absorbed by the orchestrator and only show up as an
"unavailable" image. Geocoding misses are values, not exceptions; see
``models.GeocodingMiss``.
"""


class TripPlannerError(Exception):
    """Base class for all pipeline errors."""


class GenerationError(TripPlannerError):
    """The text-generation service was unreachable or returned nothing usable."""


class ParseError(TripPlannerError):
    """The generated itinerary contained no day sections."""


class ImageJobError(TripPlannerError):
    """Base class for image job lifecycle errors."""


class RateLimitedError(ImageJobError):
    """The image service asked us to back off.

    Not a failure on its own: callers wait ``retry_after`` seconds and retry.
    """

    def __init__(self, retry_after: float, message: str = "Rate limited") -> None:
        super().__init__(f"{message} (retry after {retry_after:g}s)")
        self.retry_after = retry_after


class SubmissionError(ImageJobError):
    """The image job could not be created."""


class PollError(ImageJobError):
    """A single status poll failed (transport error or unexpected payload)."""


class PollTimeoutError(ImageJobError):
    """The job did not reach a terminal state within its budget."""


class RemoteFault(ImageJobError):
    """The image service reported the job as faulted."""


class JobStateError(ImageJobError):
    """An illegal state transition was attempted."""
