"""Dependency injection provider for the gPAS client."""

from fastapi import Request

from src.clients.context import get_service_context
from src.services.gpas_service import GpasService


def get_gpas_service(request: Request) -> GpasService:
    """Get the GpasService of the service context."""
    return get_service_context(request).gpas
