"""Health check endpoint."""

import asyncio

from fastapi import APIRouter

from src.routers.deps import EpixServiceDep, GpasServiceDep
from src.schemas.health import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    epix: EpixServiceDep,
    gpas: GpasServiceDep,
) -> HealthResponse:
    """Check service health including E-PIX and gPAS connectivity."""
    epix_healthy, gpas_healthy = await asyncio.gather(
        epix.health_check(), gpas.health_check()
    )

    return HealthResponse(
        status="healthy" if epix_healthy and gpas_healthy else "degraded",
        epix=epix_healthy,
        gpas=gpas_healthy,
    )
