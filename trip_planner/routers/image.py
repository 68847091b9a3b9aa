import logging

from fastapi import APIRouter, Depends, Query

from ..deps import get_image_client
from ..errors import PollError, RateLimitedError
from ..horde import StableHordeClient, classify_poll
from ..models import ImageStatusResponse, JobState


router = APIRouter()


@router.get("/checkImageStatus", response_model=ImageStatusResponse, response_model_exclude_none=True)
async def check_image_status(
    id: str = Query(..., min_length=1),
    client: StableHordeClient = Depends(get_image_client),
) -> ImageStatusResponse:
    try:
        result = await client.check(id)
    except RateLimitedError as e:
        return ImageStatusResponse(status="waiting", wait_time=e.retry_after, message="Rate limited")
    except PollError as e:
        logging.error("Error checking image status for %s: %s", id, e)
        return ImageStatusResponse(status="error", message=str(e))

    state = classify_poll(result)
    if state is JobState.COMPLETED:
        return ImageStatusResponse(status="completed", url=result.results[0])
    if state is JobState.FAILED:
        return ImageStatusResponse(status="failed", message="Image generation failed")
    if state is JobState.ERRORED:
        return ImageStatusResponse(status="error", message="Image generation finished without results")
    return ImageStatusResponse(
        status="waiting",
        queue_position=result.queue_position,
        wait_time=result.wait_time_seconds,
    )
