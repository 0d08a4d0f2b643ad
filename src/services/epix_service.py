"""
E-PIX client service (identity gateway).

Submits participant demographics to the E-PIX master patient index and
manages the identities and possible-match links it creates:

- add-or-match via the TTP-FHIR ``$addPatient`` operation
- possible matches, identity deletion and link resolution via the
  ``epixService`` SOAP web service
- idempotent domain setup via the ``epixManagementService`` SOAP web service
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar
from xml.etree.ElementTree import Element

from src.codec import epix, fhir, soap
from src.exceptions import BackendFault, Fault, ProvisioningError, TransportError
from src.schemas.identification import Idat
from src.schemas.identity import Candidate, MatchOutcome
from src.services.transport import SOAP_TRANSIENT_STATUSES, BackendTransport
from src.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EpixService:
    """Identity gateway backed by E-PIX."""

    def __init__(
        self,
        transport: BackendTransport,
        base_url: str,
        domain: str,
        data_source: str,
        identifier_domain: str,
        domain_description: str = "",
        matching_config: Path | None = None,
    ):
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.domain = domain
        self.data_source = data_source
        self.identifier_domain = identifier_domain
        self.domain_description = domain_description
        self.matching_config = matching_config

    @property
    def fhir_url(self) -> str:
        return f"{self.base_url}/ttp-fhir/fhir/epix"

    @property
    def service_url(self) -> str:
        return f"{self.base_url}/epix/epixService"

    @property
    def management_url(self) -> str:
        return f"{self.base_url}/epix/epixManagementService"

    async def health_check(self) -> bool:
        """Check if the E-PIX TTP-FHIR endpoint is reachable."""
        try:
            await self.transport.probe(self.fhir_url)
            return True
        except TransportError:
            return False

    async def add_or_match(self, idat: Idat) -> MatchOutcome:
        """
        Submit an identity to E-PIX and return the matching outcome.

        E-PIX creates a new identity unless it finds a perfect match; the
        returned identity id refers to the submitted identity either way.

        Raises:
            BackendFault: If E-PIX rejects the identity
            DecodeError: If the response lacks status, MPI or identity id
        """
        body = epix.add_patient_request(idat, self.domain, self.data_source)
        response = await self.transport.send("POST", f"{self.fhir_url}/$addPatient", body)
        outcome = fhir.decode(response.status_code, response.content, epix.parse_match_result)
        if isinstance(outcome, Fault):
            raise BackendFault(outcome, "Failed to add identity to E-PIX")

        logger.info(
            "E-PIX match status %s for identity %d",
            outcome.status.value,
            outcome.identity_id,
        )
        return outcome

    async def possible_matches(self, mpi: str) -> list[Candidate]:
        """Fetch all open possible matches linked to an MPI."""
        candidates = await self._call(
            self.service_url,
            epix.possible_matches_request(self.domain, mpi),
            "getPossibleMatchesForPersonResponse",
            epix.parse_possible_matches,
            "Failed to get possible E-PIX matches",
        )
        logger.debug("Found %d possible match(es) for MPI %s", len(candidates), mpi)
        return candidates

    async def delete_identity(self, identity_id: int) -> None:
        """
        Deactivate and delete an identity.

        Raises:
            BackendFault: If either phase fails; deletion is not attempted
                when deactivation fails
        """
        await self._call(
            self.service_url,
            epix.deactivate_identity_request(identity_id),
            "deactivateIdentityResponse",
            epix.parse_void,
            "Failed to deactivate E-PIX identity",
        )
        logger.debug("E-PIX identity %d deactivated", identity_id)

        await self._call(
            self.service_url,
            epix.delete_identity_request(identity_id),
            "deleteIdentityResponse",
            epix.parse_void,
            "Failed to delete E-PIX identity",
        )
        logger.info("E-PIX identity %d deleted", identity_id)

    async def split_link(self, link_id: int) -> None:
        """Resolve a possible match as 'not the same person'."""
        await self._call(
            self.service_url,
            epix.remove_possible_match_request(link_id),
            "removePossibleMatchResponse",
            epix.parse_void,
            f"Failed to resolve possible E-PIX match with link id {link_id}",
        )
        logger.info("E-PIX possible match %d split", link_id)

    async def setup(self) -> None:
        """
        Create identifier domain, data source and domain if missing.

        Raises:
            ProvisioningError: On any fault other than 'already exists'
        """
        await self.provision_identifier_domain(self.identifier_domain)
        await self.provision_data_source(self.data_source)
        await self.provision_domain(
            self.domain,
            self.domain_description,
            self.identifier_domain,
            self.data_source,
        )

    async def provision_identifier_domain(self, name: str) -> None:
        await self._provision(
            epix.add_identifier_domain_request(name),
            "addIdentifierDomainResponse",
            f"identifier domain {name}",
        )

    async def provision_data_source(self, name: str) -> None:
        await self._provision(
            epix.add_source_request(name),
            "addSourceResponse",
            f"data source {name}",
        )

    async def provision_domain(
        self,
        name: str,
        description: str,
        identifier_domain: str,
        data_source: str,
    ) -> None:
        body = epix.add_domain_request(
            name,
            description,
            identifier_domain,
            data_source,
            self._load_matching_config(),
        )
        await self._provision(body, "addDomainResponse", f"domain {name}")

    def _load_matching_config(self) -> str:
        if self.matching_config is None:
            return ""
        return self.matching_config.read_text(encoding="utf-8")

    async def _provision(self, body: bytes, operation: str, what: str) -> None:
        response = await self.transport.send(
            "POST",
            self.management_url,
            body,
            content_type=soap.SOAP_CONTENT_TYPE,
            retry_statuses=SOAP_TRANSIENT_STATUSES,
        )
        result = soap.decode(response.status_code, response.content, operation, epix.parse_void)
        if isinstance(result, Fault):
            if result.kind.already_exists:
                logger.debug("E-PIX %s already exists: %s", what, result.message)
                return
            raise ProvisioningError(result, f"Failed to create E-PIX {what}")
        logger.info("E-PIX %s created", what)

    async def _call(
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


def create_epix_service(config: Settings, transport: BackendTransport) -> EpixService:
    """Create an EpixService from settings."""
    return EpixService(
        transport,
        base_url=config.epix_url,
        domain=config.epix_domain,
        data_source=config.epix_data_source,
        identifier_domain=config.epix_identifier_domain,
        domain_description=config.epix_domain_description,
        matching_config=config.epix_matching_config,
    )


