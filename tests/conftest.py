"""Test configuration and fixtures."""

from datetime import date
from typing import AsyncGenerator, Generator, Protocol
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.clients.epix import get_epix_service
from src.clients.gpas import get_gpas_service
from src.clients.orchestrator import get_orchestrator
from src.core.auth import AuthenticatedUser, get_current_user
from src.main import app
from src.resolution.orchestrator import Orchestrator
from src.schemas.identification import Idat, IdResponse
from src.services.epix_service import EpixService
from src.services.gpas_service import GpasService
from src.services.transport import BackendTransport, RetryPolicy
from tests.fake_ttp import FakeTtp

EPIX_URL = "http://epix.test"
GPAS_URL = "http://gpas.test"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Configure pytest-anyio to use asyncio."""
    return "asyncio"


@pytest.fixture
def idat() -> Idat:
    """Demographics of the sample participant."""
    return Idat(
        first_name="Max",
        last_name="Mustermann",
        birth_date=date(1981, 11, 2),
        birth_place="Greifswald",
        postal_code="17489",
        city="Greifswald",
    )


@pytest.fixture
def id_request_payload() -> dict[str, object]:
    """Create request for the sample participant."""
    return {
        "first_name": "Max",
        "last_name": "Mustermann",
        "birth_date": "1981-11-02",
        "birth_place": "Greifswald",
        "postal_code": "17489",
        "city": "Greifswald",
        "trial": "kks",
        "lab": {"genetics": 2},
    }


@pytest.fixture
def mock_epix_service() -> AsyncMock:
    """Mock E-PIX service for testing."""
    mock = AsyncMock(spec=EpixService)
    mock.health_check.return_value = True
    return mock


@pytest.fixture
def mock_gpas_service() -> AsyncMock:
    """Mock gPAS service for testing."""
    mock = AsyncMock(spec=GpasService)
    mock.health_check.return_value = True
    return mock


@pytest.fixture
def mock_orchestrator() -> AsyncMock:
    """Mock orchestrator for testing."""
    mock = AsyncMock(spec=Orchestrator)
    mock.create.return_value = IdResponse(
        participant="PSN000001",
        lab={"genetics": ["kks_genetics-1", "kks_genetics-2"]},
    )
    mock.read.return_value = IdResponse(
        participant="1001000000022",
        lab={"genetics": ["kks_genetics-1", "kks_genetics-2"]},
    )
    return mock


@pytest.fixture
def mock_authenticated_user() -> AuthenticatedUser:
    """Mock authenticated user for testing."""
    return AuthenticatedUser(
        auth_type="oidc",
        subject="test-user-id",
        claims={"sub": "test-user-id", "azp": "trustee"},
    )


@pytest.fixture
def fake_ttp() -> FakeTtp:
    """In-memory E-PIX and gPAS."""
    return FakeTtp()


@pytest.fixture
async def backend_transport(fake_ttp: FakeTtp) -> AsyncGenerator[BackendTransport, None]:
    """BackendTransport routed to the in-memory TTP, without backoff delays."""
    transport = BackendTransport(
        retry=RetryPolicy(max_retries=2, min_wait=0, max_wait=0),
        transport=fake_ttp.transport,
    )
    yield transport
    await transport.close()


@pytest.fixture
def epix_service(backend_transport: BackendTransport) -> EpixService:
    return EpixService(
        backend_transport,
        base_url=EPIX_URL,
        domain="kks",
        data_source="gateway",
        identifier_domain="MPI",
    )


@pytest.fixture
def gpas_service(backend_transport: BackendTransport) -> GpasService:
    return GpasService(backend_transport, base_url=GPAS_URL)


class ClientFactory(Protocol):
    """Protocol for client factory fixture."""

    def __call__(self, orchestrator: Orchestrator | None = None) -> AsyncClient: ...


@pytest.fixture
def client_factory(
    mock_epix_service: AsyncMock,
    mock_gpas_service: AsyncMock,
    mock_orchestrator: AsyncMock,
    mock_authenticated_user: AuthenticatedUser,
) -> Generator[ClientFactory, None, None]:
    """Factory for creating test clients with mocked dependencies."""

    def _create_client(orchestrator: Orchestrator | None = None) -> AsyncClient:
        app.dependency_overrides[get_epix_service] = lambda: mock_epix_service
        app.dependency_overrides[get_gpas_service] = lambda: mock_gpas_service
        app.dependency_overrides[get_orchestrator] = lambda: (
            orchestrator or mock_orchestrator
        )
        app.dependency_overrides[get_current_user] = lambda: mock_authenticated_user

        transport = ASGITransport(app=app)
        return AsyncClient(transport=transport, base_url="http://testserver")

    yield _create_client

    app.dependency_overrides.clear()


@pytest.fixture
async def client(
    client_factory: ClientFactory,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client for testing endpoints."""
    async with client_factory() as c:
        yield c
