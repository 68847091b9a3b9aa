"""End-to-end trip planning: text -> routes -> coordinates + image -> TripPlan."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List

from .errors import ParseError
from .geocoding import GeocodeResult, GeocodingResolver
from .image_jobs import ImageJobOrchestrator
from .models import Coordinate, DayRoute, ImageJob, ImageSummary, JobState, TripPlan, TripType
from .parser import ItineraryParser
from .text_generation import TextGenerationClient, build_image_prompt, build_itinerary_prompt


def _as_coordinate(result: GeocodeResult) -> Coordinate:
    return result if isinstance(result, Coordinate) else Coordinate.unresolved()


class PipelineCoordinator:
    def __init__(
        self,
        text_client: TextGenerationClient,
        parser: ItineraryParser,
        geocoder: GeocodingResolver,
        image_jobs: Callable[[], ImageJobOrchestrator],
        days: int = 3,
    ) -> None:
        self.text_client = text_client
        self.parser = parser
        self.geocoder = geocoder
        self.image_jobs = image_jobs
        self.days = days

    async def plan_trip(self, country: str, trip_type: TripType) -> TripPlan:
        """Build a plan; raises GenerationError/ParseError, degrades everything else."""
        start_time = time.monotonic()
        prompt = build_itinerary_prompt(country, trip_type, self.days)
        raw_text = await self.text_client.complete(prompt)

        routes = self.parser.parse(raw_text, country, trip_type)
        if not routes:
            raise ParseError("No 'Day N:' sections found in the generated itinerary")

        routes, job = await asyncio.gather(
            self.enrich_routes(routes, country),
            self.run_image_job(build_image_prompt(country, trip_type, self.days)),
        )

        plan = TripPlan(routes=routes, image=ImageSummary.from_job(job), prompt=prompt)
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "tool": "pipeline",
            "fn": "plan_trip",
            "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
            "ok": True,
            "country": country,
            "trip_type": trip_type,
            "routes": len(routes),
            "unresolved": sum(
                1 for r in routes for c in (r.start_coord, r.end_coord) if not c.resolved
            ),
            "image_state": job.state.value,
        }
        logging.info(json.dumps(log_data))
        return plan

    async def run_image_job(self, prompt: str) -> ImageJob:
        """Run a fresh image job; any failure leaves the plan without an image."""
        try:
            return await self.image_jobs().run(prompt)
        except Exception as e:
            logging.exception("Image job failed unexpectedly: %s", e)
            return ImageJob(state=JobState.ERRORED, error=str(e))

    async def enrich_routes(self, routes: List[DayRoute], country: str) -> List[DayRoute]:
        """Attach coordinates to each route, keeping each route at its own index."""
        places = [p for r in routes for p in (r.start_place, r.end_place)]
        resolved: Dict[str, GeocodeResult] = await self.geocoder.resolve_many(places, country)

        enriched = list(routes)
        for i, route in enumerate(routes):
            enriched[i] = route.model_copy(
                update={
                    "start_coord": _as_coordinate(resolved[route.start_place]),
                    "end_coord": _as_coordinate(resolved[route.end_place]),
                }
            )
        return enriched
