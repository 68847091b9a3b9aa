import os

import httpx
import pytest


TRIP_PLANNER_URL = os.getenv("TRIP_PLANNER_URL", "").rstrip("/")
DEFAULT_TIMEOUT = float(os.getenv("TEST_HTTP_TIMEOUT", "600"))

pytestmark = pytest.mark.skipif(not TRIP_PLANNER_URL, reason="TRIP_PLANNER_URL not set")


def _get_route(country: str, trip_type: str) -> dict:
    """
    Call the running service's /getRoute and return the decoded plan.
    """
    with httpx.Client(timeout=DEFAULT_TIMEOUT) as client:
        resp = client.post(
            f"{TRIP_PLANNER_URL}/getRoute",
            json={"country": country, "tripType": trip_type},
        )
        resp.raise_for_status()
        return resp.json()


def test_car_trip_in_france():
    plan = _get_route("France", "car")
    routes = plan["routes"]
    assert [r["index"] for r in routes] == list(range(1, len(routes) + 1))
    assert all(80 <= r["distanceKm"] <= 300 for r in routes)
    for prev, nxt in zip(routes, routes[1:]):
        assert prev["endPlace"] == nxt["startPlace"]
    assert plan["image"]["status"] in ("completed", "unavailable")


def test_bicycle_trip_in_netherlands():
    plan = _get_route("Netherlands", "bicycle")
    assert plan["routes"]
    assert all(r["distanceKm"] <= 80 for r in plan["routes"])
    # At least one place should geocode inside the country
    assert any(r["startCoord"]["resolved"] or r["endCoord"]["resolved"] for r in plan["routes"])


def test_image_status_for_unknown_job():
    with httpx.Client(timeout=DEFAULT_TIMEOUT) as client:
        resp = client.get(f"{TRIP_PLANNER_URL}/checkImageStatus", params={"id": "00000000-0000-0000-0000-000000000000"})
    assert resp.status_code == 200
    assert resp.json()["status"] in ("error", "waiting", "failed")
