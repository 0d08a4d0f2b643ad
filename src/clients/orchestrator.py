"""Dependency injection provider for the match resolution orchestrator."""

from fastapi import Request

from src.clients.context import get_service_context
from src.resolution.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """Get the Orchestrator of the service context."""
    return get_service_context(request).orchestrator
