from fastapi import HTTPException, Request, status

from .horde import StableHordeClient
from .pipeline import PipelineCoordinator


def get_pipeline(request: Request) -> PipelineCoordinator:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Pipeline not initialized",
        )
    return pipeline


def get_image_client(request: Request) -> StableHordeClient:
    client = getattr(request.app.state, "image_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Image client not initialized",
        )
    return client
