"""Dependency injection provider for the E-PIX client."""

from fastapi import Request

from src.clients.context import get_service_context
from src.services.epix_service import EpixService


def get_epix_service(request: Request) -> EpixService:
    """Get the EpixService of the service context."""
    return get_service_context(request).epix
