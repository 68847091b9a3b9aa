import os
from typing import Final


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class _Config:
    def __init__(self) -> None:
        # Service
        self.port: int = _int_env("PORT", 3001)
        self.rate_limit: str = os.getenv("TRIP_RATE_LIMIT", "30/minute")
        self.itinerary_days: int = _int_env("ITINERARY_DAYS", 3)

        # HTTP behavior
        self.user_agent: str = os.getenv("TRIP_USER_AGENT", "TripPlanner/1.0")
        self.http_timeout_sec: float = _float_env("HTTP_TIMEOUT_SEC", 10.0)

        # Text generation (Gemini)
        self.gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
        self.text_timeout_sec: float = _float_env("TEXT_TIMEOUT_SEC", 60.0)

        # Geocoding (Nominatim)
        self.nominatim_base: str = os.getenv("NOMINATIM_BASE", "https://nominatim.openstreetmap.org")
        self.geocode_timeout_sec: float = _float_env("GEOCODE_TIMEOUT_SEC", 8.0)
        self.geocode_cache_size: int = _int_env("GEOCODE_CACHE_SIZE", 512)
        self.geocode_concurrency: int = _int_env("GEOCODE_CONCURRENCY", 2)

        # Image generation (Stable Horde)
        self.horde_base: str = os.getenv("HORDE_BASE", "https://stablehorde.net/api/v2")
        # "0000000000" is the Horde's anonymous key
        self.horde_api_key: str = os.getenv("HORDE_API_KEY", "0000000000")
        self.horde_client_agent: str = os.getenv("HORDE_CLIENT_AGENT", "TripPlanner:1.0:unknown")
        self.image_width: int = _int_env("IMAGE_WIDTH", 512)
        self.image_height: int = _int_env("IMAGE_HEIGHT", 512)
        self.image_steps: int = _int_env("IMAGE_STEPS", 30)

        # Image job lifecycle
        self.submit_max_retries: int = _int_env("IMAGE_SUBMIT_MAX_RETRIES", 3)
        self.default_retry_after_sec: float = _float_env("IMAGE_DEFAULT_RETRY_AFTER_SEC", 5.0)
        self.poll_initial_interval_sec: float = _float_env("IMAGE_POLL_INITIAL_SEC", 2.0)
        self.poll_max_interval_sec: float = _float_env("IMAGE_POLL_MAX_SEC", 15.0)
        self.poll_max_attempts: int = _int_env("IMAGE_POLL_MAX_ATTEMPTS", 20)
        # Absolute ceiling; defaults to attempts x capped interval
        self.poll_timeout_sec: float = _float_env(
            "IMAGE_POLL_TIMEOUT_SEC", self.poll_max_attempts * self.poll_max_interval_sec
        )


CONFIG: Final[_Config] = _Config()
