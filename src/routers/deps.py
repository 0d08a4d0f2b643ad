"""Shared dependencies for routers."""

from typing import Annotated

from fastapi import Depends

from src.clients.epix import get_epix_service
from src.clients.gpas import get_gpas_service
from src.clients.orchestrator import get_orchestrator
from src.core.auth import AuthenticatedUser, get_current_user
from src.resolution.orchestrator import Orchestrator
from src.services.epix_service import EpixService
from src.services.gpas_service import GpasService

# Typed dependency aliases for use in endpoint signatures
EpixServiceDep = Annotated[EpixService, Depends(get_epix_service)]
GpasServiceDep = Annotated[GpasService, Depends(get_gpas_service)]
OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]
CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]
