"""Async client for the Stable Horde image generation API (v2)."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx

from .errors import PollError, RateLimitedError, SubmissionError
from .models import JobState, PollResult


class ImageServiceClient(Protocol):
    async def submit(self, prompt: str, params: Dict[str, Any]) -> str:
        ...

    async def check(self, job_id: str) -> PollResult:
        ...


def classify_poll(result: PollResult) -> JobState:
    """Map a status poll onto the job state it implies."""
    if result.faulted:
        return JobState.FAILED
    if result.done:
        return JobState.COMPLETED if result.results else JobState.ERRORED
    if result.processing > 0:
        return JobState.GENERATING
    return JobState.QUEUED


def parse_retry_after(value: Optional[str], default: float) -> float:
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


class StableHordeClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "https://stablehorde.net/api/v2",
        api_key: str = "0000000000",
        client_agent: str = "TripPlanner:1.0:unknown",
        timeout_sec: float = 10.0,
        default_retry_after_sec: float = 5.0,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.default_retry_after_sec = default_retry_after_sec
        self.headers = {
            "Content-Type": "application/json",
            "apikey": api_key,
            "Client-Agent": client_agent,
        }

    async def submit(self, prompt: str, params: Dict[str, Any]) -> str:
        start_time = time.monotonic()
        payload = {
            "prompt": prompt,
            "params": params,
            "nsfw": False,
            "censor_nsfw": True,
            "trusted_workers": True,
        }
        try:
            resp = await self.client.post(
                f"{self.base_url}/generate/async",
                json=payload,
                headers=self.headers,
                timeout=self.timeout_sec,
            )
        except httpx.HTTPError as e:
            _log("submit", start_time, False, None, error=str(e))
            raise SubmissionError(f"Stable Horde request failed: {e}") from e

        self._raise_for_rate_limit(resp, "submit", start_time)
        if resp.status_code not in (200, 202):
            _log("submit", start_time, False, resp.status_code)
            raise SubmissionError(f"Stable Horde error: {resp.status_code} {_message(resp)}")

        try:
            job_id = resp.json().get("id")
        except ValueError:
            job_id = None
        if not job_id:
            _log("submit", start_time, False, resp.status_code, error="no id")
            raise SubmissionError("Stable Horde response carried no job id")

        _log("submit", start_time, True, resp.status_code, job_id=job_id)
        return str(job_id)

    async def check(self, job_id: str) -> PollResult:
        start_time = time.monotonic()
        data = await self._get(f"/generate/check/{job_id}", "check", start_time)
        result = PollResult(
            done=bool(data.get("done")),
            faulted=bool(data.get("faulted")),
            processing=int(data.get("processing") or 0),
            queue_position=data.get("queue_position"),
            wait_time_seconds=data.get("wait_time"),
        )
        if result.done and not result.faulted:
            # The lightweight check endpoint omits the generations
            full = await self._get(f"/generate/status/{job_id}", "status", time.monotonic())
            generations = full.get("generations") or []
            result.results = [g["img"] for g in generations if isinstance(g, dict) and g.get("img")]
            result.faulted = bool(full.get("faulted"))
        _log("check", start_time, True, 200, job_id=job_id, done=result.done, faulted=result.faulted)
        return result

    async def _get(self, path: str, fn: str, start_time: float) -> Dict[str, Any]:
        try:
            resp = await self.client.get(
                f"{self.base_url}{path}", headers=self.headers, timeout=self.timeout_sec
            )
        except httpx.HTTPError as e:
            _log(fn, start_time, False, None, error=str(e))
            raise PollError(f"Stable Horde request failed: {e}") from e

        self._raise_for_rate_limit(resp, fn, start_time)
        if resp.status_code != 200:
            _log(fn, start_time, False, resp.status_code)
            raise PollError(f"Stable Horde error: {resp.status_code} {_message(resp)}")
        try:
            data = resp.json()
        except ValueError as e:
            raise PollError("Stable Horde returned malformed JSON") from e
        if not isinstance(data, dict):
            raise PollError("Stable Horde returned an unexpected payload")
        return data

    def _raise_for_rate_limit(self, resp: httpx.Response, fn: str, start_time: float) -> None:
        if resp.status_code != 429:
            return
        retry_after = parse_retry_after(resp.headers.get("retry-after"), self.default_retry_after_sec)
        _log(fn, start_time, False, 429, retry_after=retry_after)
        raise RateLimitedError(retry_after)


def _message(resp: httpx.Response) -> str:
    try:
        return str(resp.json().get("message", ""))
    except (ValueError, AttributeError):
        return ""


def _log(fn: str, start_time: float, ok: bool, http_status: Optional[int], **extra: object) -> None:
    log_data = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "tool": "stable-horde",
        "fn": fn,
        "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
        "ok": ok,
        "http_status": http_status,
        **extra,
    }
    logging.info(json.dumps(log_data))
