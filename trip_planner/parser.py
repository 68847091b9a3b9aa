"""Turn free-form itinerary text into an ordered list of ``DayRoute``.

The text is expected to look roughly like::

    Day 1:
    From Paris to Lyon
    Total Distance: 450 km
    Estimated Duration: 5 hours
    Eiffel Tower
    Louvre
    Day 2:
    ...

Anything inside a day block that does not match degrades to empty fields; only
a text without any ``Day N:`` marker is treated as unparseable (empty list).
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, NamedTuple, Optional, Protocol, Sequence

from .models import (
    BICYCLE_MAX_DISTANCE_KM,
    CAR_MAX_DISTANCE_KM,
    CAR_MIN_DISTANCE_KM,
    DayRoute,
    TripType,
)


DAY_MARKER = re.compile(r"\bDay\s+\d+\s*:", re.IGNORECASE)
# Units may follow the number directly, as in "450km"
DISTANCE_UNIT = re.compile(r"(?:(?<=\d)|\b)(?:km|kms|kilomet(?:er|re)s?|miles?)\b", re.IGNORECASE)
DURATION_KEYWORD = re.compile(r"\bduration\b", re.IGNORECASE)
NUMBER = re.compile(r"\d+(?:\.\d+)?")
THOUSANDS_SEP = re.compile(r"(?<=\d),(?=\d{3}\b)")
BULLET = re.compile(r"^(?:[-*•]+|\d+[.)])\s*")

# Capitalized words that introduce or join places rather than name them
CONNECTIVES = frozenset(
    {
        "From", "To", "Via", "Then", "Day", "Start", "Starting", "End", "Ending",
        "Drive", "Driving", "Ride", "Riding", "Cycle", "Cycling", "Bike", "Biking",
        "Travel", "Head", "Continue", "Return", "Depart", "Arrive", "Explore",
        "Visit", "Route", "Morning", "Afternoon", "Evening", "Total", "Distance",
        "Estimated", "Duration", "And", "Or", "Through", "Towards", "Toward",
        "A", "An", "The", "This", "Your", "Our", "We", "I",
    }
)


class LocationExtractor(Protocol):
    def extract_locations(self, text: str) -> Sequence[str]:
        ...


class CapitalizedPhraseExtractor:
    """Best-effort extractor: runs of capitalized words separated by single spaces.

    ``"From Paris to Saint-Malo"`` -> ``["Paris", "Saint-Malo"]``.
    """

    _word = re.compile(r"[^\W\d_]+(?:[-'’][^\W\d_]+)*")

    def __init__(self, connectives: Iterable[str] = CONNECTIVES) -> None:
        self.connectives = frozenset(connectives)

    def extract_locations(self, text: str) -> List[str]:
        locations: List[str] = []
        current: List[str] = []
        last_end: Optional[int] = None

        def flush() -> None:
            if current:
                locations.append(" ".join(current))
                current.clear()

        for match in self._word.finditer(text):
            word = match.group(0)
            if not word[0].isupper() or word in self.connectives:
                flush()
                last_end = None
                continue
            if current and (last_end is None or text[last_end:match.start()] != " "):
                flush()
            current.append(word)
            last_end = match.end()
        flush()
        return locations


class DayDetails(NamedTuple):
    description: str
    distance: float
    duration: Optional[str]
    points_of_interest: List[str]


def split_day_sections(text: str) -> List[str]:
    """Return the blocks following each ``Day N:`` marker; preamble is dropped."""
    if not text:
        return []
    return DAY_MARKER.split(text)[1:]


def _clean(line: str) -> str:
    return line.strip().strip("*#_").strip()


def extract_day_details(block: str) -> DayDetails:
    lines = [cleaned for cleaned in (_clean(line) for line in block.splitlines()) if cleaned]
    if not lines:
        return DayDetails("", 0.0, None, [])

    description = lines[0]

    distance = 0.0
    distance_idx = next((i for i, line in enumerate(lines) if DISTANCE_UNIT.search(line)), None)
    if distance_idx is not None:
        m = NUMBER.search(THOUSANDS_SEP.sub("", lines[distance_idx]))
        if m:
            distance = float(m.group(0))

    duration: Optional[str] = None
    duration_idx = next((i for i, line in enumerate(lines) if DURATION_KEYWORD.search(line)), None)
    if duration_idx is not None:
        _, sep, value = lines[duration_idx].partition(":")
        duration = (value.strip() or None) if sep else None

    skip = {0, distance_idx, duration_idx}
    points = [BULLET.sub("", line) for i, line in enumerate(lines) if i not in skip]
    return DayDetails(description, distance, duration, [p for p in points if p])


def clamp_distance(distance: float, trip_type: TripType) -> float:
    if trip_type == "bicycle":
        return max(0.0, min(distance, BICYCLE_MAX_DISTANCE_KM))
    return max(CAR_MIN_DISTANCE_KM, min(distance, CAR_MAX_DISTANCE_KM))


class ItineraryParser:
    def __init__(self, extractor: Optional[LocationExtractor] = None) -> None:
        self.extractor: LocationExtractor = extractor or CapitalizedPhraseExtractor()

    def parse(self, text: str, country: str, trip_type: TripType) -> List[DayRoute]:
        routes: List[DayRoute] = []
        previous_end: Optional[str] = None

        for index, block in enumerate(split_day_sections(text), start=1):
            details = extract_day_details(block)
            locations = list(self.extractor.extract_locations(details.description))

            start = previous_end or (locations[0] if locations else country)
            end = locations[-1] if locations else country
            if start == end and len(locations) > 1:
                end = locations[1]

            routes.append(
                DayRoute(
                    index=index,
                    name=f"{country} - Day {index} Route",
                    description=details.description,
                    start_place=start,
                    end_place=end,
                    distance_km=clamp_distance(details.distance, trip_type),
                    duration=details.duration,
                    points_of_interest=details.points_of_interest,
                )
            )
            logging.debug("Parsed day %d: %s -> %s", index, start, end)
            previous_end = end

        return routes
