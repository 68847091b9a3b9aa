import asyncio

import pytest

from trip_planner.errors import GenerationError, ParseError
from trip_planner.geocoding import GeocodingResolver
from trip_planner.models import Coordinate, GeocodingMiss, ImageJob, JobState
from trip_planner.parser import ItineraryParser
from trip_planner.pipeline import PipelineCoordinator


ITINERARY = """Day 1:
From Paris to Lyon
Total Distance: 450 km
Estimated Duration: 5 hours
Eiffel Tower
Day 2:
From Lyon to Atlantis
Total Distance: 200 km
Estimated Duration: 3 hours
Old Town
Day 3:
From Atlantis to Nice
Total Distance: 250 km
Estimated Duration: 4 hours
Promenade des Anglais
"""

COORDS = {
    "Paris": Coordinate(lat=48.85, lng=2.35),
    "Lyon": Coordinate(lat=45.76, lng=4.83),
    "Nice": Coordinate(lat=43.7, lng=7.26),
}


class FakeText:
    def __init__(self, text=ITINERARY, error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.text


class FakeGeocoder(GeocodingResolver):
    """Answers from COORDS; later places answer sooner to scramble completion order."""

    def __init__(self):
        super().__init__(None)
        self.lookups = []

    async def resolve(self, place, country):
        self.lookups.append(place)
        await asyncio.sleep(0.01 / (1 + len(self.lookups)))
        if place in COORDS:
            return COORDS[place]
        return GeocodingMiss(place=place, country=country)


class FakeImageJob:
    def __init__(self, state=JobState.COMPLETED, url="https://img.test/1.webp", error=None):
        self.state = state
        self.url = url
        self.error = error
        self.prompts = []

    async def run(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return ImageJob(id="job-1", state=self.state, url=self.url if self.state is JobState.COMPLETED else None)


def _pipeline(text=None, image=None):
    image = image or FakeImageJob()
    pipeline = PipelineCoordinator(
        text_client=text or FakeText(),
        parser=ItineraryParser(),
        geocoder=FakeGeocoder(),
        image_jobs=lambda: image,
    )
    return pipeline, image


def test_plan_trip_assembles_routes_and_image():
    pipeline, image = _pipeline()
    plan = asyncio.run(pipeline.plan_trip("France", "car"))

    assert [r.index for r in plan.routes] == [1, 2, 3]
    assert plan.routes[0].start_coord == COORDS["Paris"]
    assert plan.routes[0].end_coord == COORDS["Lyon"]
    assert plan.routes[1].start_coord == COORDS["Lyon"]
    assert plan.routes[2].end_coord == COORDS["Nice"]
    assert plan.image.status == "completed"
    assert plan.image.url == "https://img.test/1.webp"
    assert plan.image.id == "job-1"
    assert "France" in plan.prompt and "car" in plan.prompt
    assert "France" in image.prompts[0]


def test_scenario_d_unresolved_place_gets_sentinel():
    pipeline, _ = _pipeline()
    plan = asyncio.run(pipeline.plan_trip("France", "car"))
    day2, day3 = plan.routes[1], plan.routes[2]
    assert day2.end_place == "Atlantis"
    assert day2.end_coord == Coordinate(lat=0, lng=0, resolved=False)
    assert day3.start_coord.resolved is False
    assert day3.end_coord.resolved is True


def test_shared_places_are_geocoded_once():
    pipeline, _ = _pipeline()
    asyncio.run(pipeline.plan_trip("France", "car"))
    assert sorted(pipeline.geocoder.lookups) == ["Atlantis", "Lyon", "Nice", "Paris"]


@pytest.mark.parametrize("state", [JobState.FAILED, JobState.ERRORED, JobState.ABANDONED])
def test_failed_image_degrades_but_plan_succeeds(state):
    pipeline, _ = _pipeline(image=FakeImageJob(state=state))
    plan = asyncio.run(pipeline.plan_trip("France", "bicycle"))
    assert len(plan.routes) == 3
    assert plan.image.status == "unavailable"
    assert plan.image.url is None
    assert all(r.distance_km <= 80 for r in plan.routes)


def test_generation_error_propagates():
    pipeline, image = _pipeline(text=FakeText(error=GenerationError("Text generation failed: 503")))
    with pytest.raises(GenerationError):
        asyncio.run(pipeline.plan_trip("France", "car"))
    assert image.prompts == []


def test_zero_sections_is_a_parse_error():
    pipeline, image = _pipeline(text=FakeText(text="Sorry, I cannot plan that trip."))
    with pytest.raises(ParseError):
        asyncio.run(pipeline.plan_trip("France", "car"))
    assert image.prompts == []


def test_unexpected_image_error_degrades_but_plan_succeeds():
    pipeline, _ = _pipeline(image=FakeImageJob(error=ValueError("unexpected payload")))
    plan = asyncio.run(pipeline.plan_trip("France", "car"))
    assert len(plan.routes) == 3
    assert plan.routes[0].start_coord == COORDS["Paris"]
    assert plan.image.status == "unavailable"


def test_geocoding_and_image_job_run_concurrently():
    # Each side waits for the other to start, so running them one after the other times out
    async def scenario():
        geocoding_started = asyncio.Event()
        image_started = asyncio.Event()

        class WaitingGeocoder(FakeGeocoder):
            async def resolve(self, place, country):
                geocoding_started.set()
                await asyncio.wait_for(image_started.wait(), 1)
                return await super().resolve(place, country)

        class WaitingImageJob(FakeImageJob):
            async def run(self, prompt):
                image_started.set()
                await asyncio.wait_for(geocoding_started.wait(), 1)
                return await super().run(prompt)

        pipeline = PipelineCoordinator(
            text_client=FakeText(),
            parser=ItineraryParser(),
            geocoder=WaitingGeocoder(),
            image_jobs=WaitingImageJob,
        )
        return await pipeline.plan_trip("France", "car")

    plan = asyncio.run(scenario())
    assert plan.image.status == "completed"
    assert plan.routes[2].end_coord == COORDS["Nice"]
