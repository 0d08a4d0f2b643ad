"""Trustee - TTP identity and pseudonym gateway."""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from src.core.auth import OidcVerifier
from src.core.context import ServiceContext
from src.exceptions import (
    ConflictError,
    NotFoundError,
    TransportError,
    TtpError,
    UnsupportedMatchStatusError,
)
from src.routers import health, pseudonyms
from src.schemas.identification import PromptResponse
from src.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan management."""
    # Startup: backends must be reachable and the E-PIX domain set up
    context = ServiceContext.build(settings)
    try:
        await context.startup()
        if settings.oidc_issuer_url:
            app.state.oidc = await OidcVerifier.discover(
                settings.oidc_issuer_url, settings.oidc_client_id or ""
            )
        else:
            logger.warning("No OIDC issuer configured, authentication is disabled")
            app.state.oidc = None
    except Exception:
        await context.close()
        raise

    app.state.context = context
    yield
    # Shutdown
    await context.close()


app = FastAPI(
    title="Trustee",
    description="Trusted third party gateway - Resolve study participants in E-PIX and pseudonymize them with gPAS",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ConflictError)
async def handle_conflict(request: Request, exc: ConflictError) -> JSONResponse:
    """Prompt the caller to resolve a possible match."""
    prompt = PromptResponse(
        message=str(exc),
        candidates=[candidate.to_prompt() for candidate in exc.candidates],
    )
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=prompt.model_dump(mode="json"),
    )


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError) -> PlainTextResponse:
    return PlainTextResponse(str(exc), status_code=status.HTTP_404_NOT_FOUND)


@app.exception_handler(UnsupportedMatchStatusError)
async def handle_unsupported_status(
    request: Request, exc: UnsupportedMatchStatusError
) -> PlainTextResponse:
    logger.error("Unsupported match status: %s", exc.status)
    return PlainTextResponse(str(exc), status_code=status.HTTP_501_NOT_IMPLEMENTED)


@app.exception_handler(TransportError)
async def handle_transport_error(
    request: Request, exc: TransportError
) -> PlainTextResponse:
    """Handle network failures and exhausted retries against E-PIX or gPAS."""
    logger.error("TTP backend unavailable: %s", exc)
    return PlainTextResponse(str(exc), status_code=status.HTTP_502_BAD_GATEWAY)


@app.exception_handler(TimeoutError)
async def handle_timeout(request: Request, exc: TimeoutError) -> PlainTextResponse:
    logger.error("Request to %s timed out", request.url.path)
    return PlainTextResponse(
        "Request timed out", status_code=status.HTTP_504_GATEWAY_TIMEOUT
    )


@app.exception_handler(TtpError)
async def handle_ttp_error(request: Request, exc: TtpError) -> PlainTextResponse:
    """Backend faults, malformed responses and match errors."""
    logger.error("Request to %s failed: %s", request.url.path, exc, exc_info=exc)
    return PlainTextResponse(
        str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


@app.exception_handler(Exception)
async def handle_unhandled_exceptions(request: Request, exc: Exception) -> JSONResponse:
    """Catch and log all unhandled exceptions."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Register routers
app.include_router(health.router)
app.include_router(pseudonyms.router)


@app.get("/")
def root() -> dict[str, str]:
    """Root endpoint."""
    return {"service": "trustee", "version": "0.1.0"}
