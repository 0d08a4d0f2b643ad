"""Dependency injection provider for the service context."""

from fastapi import Request

from src.core.context import ServiceContext


def get_service_context(request: Request) -> ServiceContext:
    """Get the ServiceContext built during application startup."""
    context: ServiceContext = request.app.state.context
    return context
