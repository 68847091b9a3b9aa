import logging

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager
import httpx
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
import uvicorn
from trip_planner.routers.route import router as route_router
from trip_planner.routers.image import router as image_router
from .config import CONFIG
from .geocoding import GeocodeCache, GeocodingResolver
from .horde import StableHordeClient
from .image_jobs import ImageJobOrchestrator
from .parser import ItineraryParser
from .pipeline import PipelineCoordinator
from .text_generation import GeminiTextClient


# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()  # Ensure logs go to stdout/stderr
    ]
)
# --------------------------

limiter = Limiter(key_func=get_remote_address, default_limits=[CONFIG.rate_limit])


def build_pipeline(http_client: httpx.AsyncClient, cache: GeocodeCache) -> tuple[PipelineCoordinator, StableHordeClient]:
    image_client = StableHordeClient(
        http_client,
        base_url=CONFIG.horde_base,
        api_key=CONFIG.horde_api_key,
        client_agent=CONFIG.horde_client_agent,
        timeout_sec=CONFIG.http_timeout_sec,
        default_retry_after_sec=CONFIG.default_retry_after_sec,
    )

    def new_image_job() -> ImageJobOrchestrator:
        return ImageJobOrchestrator(
            image_client,
            params={
                "n": 1,
                "steps": CONFIG.image_steps,
                "width": CONFIG.image_width,
                "height": CONFIG.image_height,
            },
            submit_max_retries=CONFIG.submit_max_retries,
            default_retry_after_sec=CONFIG.default_retry_after_sec,
            poll_initial_interval_sec=CONFIG.poll_initial_interval_sec,
            poll_max_interval_sec=CONFIG.poll_max_interval_sec,
            poll_max_attempts=CONFIG.poll_max_attempts,
            poll_timeout_sec=CONFIG.poll_timeout_sec,
        )

    pipeline = PipelineCoordinator(
        text_client=GeminiTextClient(
            CONFIG.gemini_api_key,
            model_name=CONFIG.gemini_model,
            timeout_sec=CONFIG.text_timeout_sec,
        ),
        parser=ItineraryParser(),
        geocoder=GeocodingResolver(
            http_client,
            base_url=CONFIG.nominatim_base,
            user_agent=CONFIG.user_agent,
            timeout_sec=CONFIG.geocode_timeout_sec,
            cache=cache,
            max_concurrency=CONFIG.geocode_concurrency,
        ),
        image_jobs=new_image_job,
        days=CONFIG.itinerary_days,
    )
    return pipeline, image_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    http_client = httpx.AsyncClient(timeout=CONFIG.http_timeout_sec)
    app.state.http_client = http_client
    app.state.geocode_cache = GeocodeCache(max_size=CONFIG.geocode_cache_size)
    app.state.pipeline, app.state.image_client = build_pipeline(http_client, app.state.geocode_cache)
    try:
        yield
    finally:
        await http_client.aclose()

app = FastAPI(title="Trip Planner", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=512)
app.include_router(route_router)
app.include_router(image_router)
# Same routes under /api for the web front-end
app.include_router(route_router, prefix="/api")
app.include_router(image_router, prefix="/api")


@app.get("/")
async def root(_: Request):
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=CONFIG.port)
