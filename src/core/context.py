"""Service context shared by all requests."""

import logging
from dataclasses import dataclass

from src.resolution.orchestrator import Orchestrator
from src.services.epix_service import EpixService, create_epix_service
from src.services.gpas_service import GpasService, create_gpas_service
from src.services.transport import BackendTransport, RetryPolicy
from src.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContext:
    """Immutable handle on the transport, gateways and orchestrator."""

    settings: Settings
    transport: BackendTransport
    epix: EpixService
    gpas: GpasService
    orchestrator: Orchestrator

    @classmethod
    def build(cls, config: Settings) -> "ServiceContext":
        """Wire the gateways and orchestrator from settings."""
        transport = BackendTransport(
            timeout=config.ttp_timeout,
            retry=RetryPolicy(
                max_retries=config.retry_count,
                min_wait=config.retry_wait,
                max_wait=config.retry_max_wait,
            ),
            username=config.ttp_username,
            password=config.ttp_password,
        )
        epix = create_epix_service(config, transport)
        gpas = create_gpas_service(config, transport)
        return cls(
            settings=config,
            transport=transport,
            epix=epix,
            gpas=gpas,
            orchestrator=Orchestrator(epix, gpas, timeout=config.request_timeout),
        )

    async def startup(self) -> None:
        """
        Check both backends and set up the E-PIX domain.

        Raises:
            TransportError: If a backend is unreachable
            ProvisioningError: If the E-PIX setup fails
        """
        await self.transport.probe(self.epix.fhir_url)
        await self.transport.probe(self.gpas.fhir_url)
        logger.info("E-PIX and gPAS are reachable")
        await self.epix.setup()

    async def close(self) -> None:
        await self.transport.close()
