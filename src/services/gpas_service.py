"""
gPAS client service (pseudonym gateway).

Pseudonymization and de-pseudonymization run through the TTP-FHIR gateway;
domain management and pseudonym listing use the gPAS SOAP web services.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar
from xml.etree.ElementTree import Element

from src.codec import fhir, gpas, soap
from src.exceptions import (
    BackendFault,
    Fault,
    FaultKind,
    ProvisioningError,
    PseudonymNotFoundError,
    TransportError,
)
from src.services.transport import SOAP_TRANSIENT_STATUSES, BackendTransport
from src.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lab_domain(trial: str, lab: str) -> str:
    """Name of the gPAS sub-domain for a lab within a trial."""
    return f"{trial}_{lab}"


class GpasService:
    """Pseudonym gateway backed by gPAS."""

    def __init__(self, transport: BackendTransport, base_url: str):
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    @property
    def fhir_url(self) -> str:
        return f"{self.base_url}/ttp-fhir/fhir/gpas"

    @property
    def domain_service_url(self) -> str:
        return f"{self.base_url}/gpas/DomainService"

    @property
    def psn_service_url(self) -> str:
        return f"{self.base_url}/gpas/gpasService"

    async def health_check(self) -> bool:
        """Check if the gPAS TTP-FHIR endpoint is reachable."""
        try:
            await self.transport.probe(self.fhir_url)
            return True
        except TransportError:
            return False

    async def provision_domain(
        self,
        name: str,
        parent: str | None = None,
        multi_psn: bool = False,
    ) -> None:
        """
        Create a pseudonym domain if it does not exist yet.

        Raises:
            ProvisioningError: On any fault other than 'domain in use'
        """
        response = await self.transport.send(
            "POST",
            self.domain_service_url,
            gpas.add_domain_request(name, parent=parent, multi_psn=multi_psn),
            content_type=soap.SOAP_CONTENT_TYPE,
            retry_statuses=SOAP_TRANSIENT_STATUSES,
        )
        result = soap.decode(
            response.status_code,
            response.content,
            "addDomainResponse",
            lambda _: None,
        )
        if isinstance(result, Fault):
            if result.kind.already_exists:
                logger.debug("gPAS domain %s already exists", name)
                return
            raise ProvisioningError(result, f"Failed to create gPAS domain {name}")
        logger.info("gPAS domain %s created (parent=%s)", name, parent)

    async def pseudonymize(self, domain: str, original: str) -> str:
        """Get the pseudonym of a value, creating it if necessary."""
        return await self._fhir_call(
            "$pseudonymizeAllowCreate",
            gpas.pseudonymize_request(domain, original),
            gpas.parse_pseudonym,
            f"Failed to pseudonymize in gPAS domain {domain}",
        )

    async def depseudonymize(self, domain: str, pseudonym: str) -> str:
        """
        Resolve a pseudonym to its original value.

        Raises:
            PseudonymNotFoundError: If the pseudonym is unknown in the domain
        """
        try:
            original = await self._fhir_call(
                "$dePseudonymize",
                gpas.depseudonymize_request(domain, pseudonym),
                gpas.parse_original,
                f"Failed to de-pseudonymize in gPAS domain {domain}",
            )
        except BackendFault as e:
            if e.fault.kind in (FaultKind.NOT_FOUND, FaultKind.UNKNOWN_VALUE):
                raise PseudonymNotFoundError(
                    f"Pseudonym {pseudonym} not found in domain {domain}"
                ) from e
            raise

        if original is None:
            raise PseudonymNotFoundError(f"Pseudonym {pseudonym} not found in domain {domain}")
        return original

    async def pseudonymize_secondary(
        self,
        domain: str,
        original: str,
        count: int,
    ) -> list[str]:
        """Request ``count`` new secondary pseudonyms in a multi-psn domain."""
        return await self._fhir_call(
            "$pseudonymize-secondary",
            gpas.secondary_request(domain, original, count),
            lambda resource: gpas.parse_secondary(resource, count),
            f"Failed to create secondary pseudonyms in gPAS domain {domain}",
        )

    async def list_child_domains(self, parent: str) -> list[str]:
        """Names of the sub-domains of a domain."""
        return await self._soap_call(
            self.domain_service_url,
            gpas.get_domain_request(parent),
            "getDomainResponse",
            gpas.parse_child_domains,
            f"Failed to get gPAS domain {parent}",
        )

    async def list_pseudonyms(
        self,
        domains: list[str],
        original: str,
    ) -> dict[str, list[str]]:
        """
        Fetch the existing pseudonyms of a value in several domains concurrently.

        One request is issued per domain. The first failure cancels the
        remaining requests and fails the whole call.
        """
        try:
            async with asyncio.TaskGroup() as group:
                tasks = {
                    domain: group.create_task(self.pseudonyms_for(domain, original))
                    for domain in domains
                }
        except* Exception as eg:
            raise eg.exceptions[0]

        return {domain: task.result() for domain, task in tasks.items()}

    async def pseudonyms_for(self, domain: str, original: str) -> list[str]:
        """Existing pseudonyms of a value in one domain."""
        return await self._soap_call(
            self.psn_service_url,
            gpas.get_pseudonyms_for_request(original, domain),
            "getPseudonymsForResponse",
            gpas.parse_pseudonyms_for,
            f"Failed to get pseudonyms in gPAS domain {domain}",
        )

    async def _fhir_call(
        self,
        operation: str,
        body: bytes,
        parse: Callable[[dict[str, Any]], T],
        error: str,
    ) -> T:
        response = await self.transport.send("POST", f"{self.fhir_url}/{operation}", body)
        result = fhir.decode(response.status_code, response.content, parse)
        if isinstance(result, Fault):
            raise BackendFault(result, error)
        return result

    async def _soap_call(
        self,
        url: str,
        body: bytes,
        operation: str,
        parse: Callable[[Element], T],
        error: str,
    ) -> T:
        response = await self.transport.send(
            "POST",
            url,
            body,
            content_type=soap.SOAP_CONTENT_TYPE,
            retry_statuses=SOAP_TRANSIENT_STATUSES,
        )
        result = soap.decode(response.status_code, response.content, operation, parse)
        if isinstance(result, Fault):
            raise BackendFault(result, error)
        return result


def create_gpas_service(config: Settings, transport: BackendTransport) -> GpasService:
    """Create a GpasService from settings."""
    return GpasService(transport, base_url=config.gpas_url)
