from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Protocol

import google.generativeai as genai

from .errors import GenerationError
from .models import TripType


class TextGenerationClient(Protocol):
    async def complete(self, prompt: str) -> str:
        ...


def build_itinerary_prompt(country: str, trip_type: TripType, days: int = 3) -> str:
    headings = ", ".join(f"'Day {n}:'" for n in range(1, days + 1))
    return (
        f"Create a continuous {days}-day travel itinerary for {country} by {trip_type}. "
        f"The itinerary must be exactly {days} days, no more and no less.\n"
        "Ensure that each day's end location is the start location for the next day.\n"
        "For bicycle trips, each day's route should not exceed 80 km.\n"
        "For car trips, each day's route should be between 80 km and 300 km.\n"
        "Include specific city names, points of interest, total distance, and estimated trip duration for each day.\n"
        f"Format the response with {headings} headings.\n"
        'Start each day\'s description with the route, e.g., "From [Start City] to [End City]".\n'
        'On a new line after the route, include the text "Total Distance: X km" where X is the total distance in km for that day\'s route.\n'
        'On another new line, include the text "Estimated Duration: Y" where Y is the estimated trip duration for that day\'s route.\n'
        "After the duration, list 3-4 points of interest. Do not use any special characters, numbers or bullet points. "
        "Just put each point of interest on its own line."
    )


def build_image_prompt(country: str, trip_type: TripType, days: int = 3) -> str:
    return (
        f"A scenic landscape representing a {days}-day trip in {country} by {trip_type}, "
        "showcasing the beauty and diversity of the country."
    )


class GeminiTextClient:
    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "gemini-2.5-flash-lite",
        timeout_sec: float = 60.0,
        temperature: float = 0.2,
    ) -> None:
        if api_key:
            genai.configure(api_key=api_key)
        self.model_name = model_name
        self.timeout_sec = timeout_sec
        self.model = genai.GenerativeModel(
            model_name,
            generation_config={"temperature": temperature},
        )

    async def complete(self, prompt: str) -> str:
        start_time = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(prompt, request_options={"timeout": self.timeout_sec}),
                timeout=self.timeout_sec,
            )
            text = getattr(response, "text", None) or ""
        except asyncio.TimeoutError as e:
            self._log(start_time, False, error="timeout")
            raise GenerationError(f"Text generation timed out after {self.timeout_sec:g}s") from e
        except Exception as e:
            self._log(start_time, False, error=str(e))
            raise GenerationError(f"Text generation failed: {e}") from e

        if not text.strip():
            self._log(start_time, False, error="empty completion")
            raise GenerationError("Text generation returned an empty completion")

        self._log(start_time, True, chars=len(text))
        return text

    def _log(self, start_time: float, ok: bool, **extra: object) -> None:
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "tool": "gemini",
            "fn": "complete",
            "model": self.model_name,
            "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
            "ok": ok,
            **extra,
        }
        logging.info(json.dumps(log_data))
