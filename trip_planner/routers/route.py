import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..deps import get_pipeline
from ..errors import GenerationError, ParseError
from ..models import RouteRequest, TripPlan
from ..pipeline import PipelineCoordinator


router = APIRouter()


@router.post("/getRoute", response_model=TripPlan)
async def get_route(req: RouteRequest, pipeline: PipelineCoordinator = Depends(get_pipeline)):
    logging.info("Received request for country: %s, tripType: %s", req.country, req.trip_type)
    try:
        return await pipeline.plan_trip(req.country, req.trip_type)
    except (GenerationError, ParseError) as e:
        logging.error("Trip planning failed for %s/%s: %s", req.country, req.trip_type, e)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": "Error fetching data", "details": str(e)},
        )
