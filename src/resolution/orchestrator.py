"""
Match resolution workflow.

Create: submit the identity to E-PIX, resolve the match outcome to a single
MPI (prompting the caller on possible matches) and pseudonymize that MPI in
the trial domain and its lab sub-domains.

Read: resolve a trial pseudonym back to its MPI and collect the pseudonyms of
all lab sub-domains of the trial.
"""

import asyncio
import logging

from src.exceptions import (
    ConflictError,
    LinkNotFoundError,
    MatchError,
    UnsupportedMatchStatusError,
)
from src.schemas.identification import IdRequest, IdResponse, Link
from src.schemas.identity import Candidate, MatchOutcome, MatchStatus
from src.services.epix_service import EpixService
from src.services.gpas_service import GpasService, lab_domain

logger = logging.getLogger(__name__)


class Orchestrator:
    """Coordinates the identity and pseudonym gateways for one request."""

    def __init__(
        self,
        epix: EpixService,
        gpas: GpasService,
        timeout: float | None = None,
    ):
        self.epix = epix
        self.gpas = gpas
        self.timeout = timeout

    async def create(self, request: IdRequest) -> IdResponse:
        """
        Resolve a participant and create their pseudonyms.

        Raises:
            ConflictError: Possible match and no link given
            LinkNotFoundError: Link id is not among the open possible matches
            MatchError: E-PIX reported MATCH_ERROR
            UnsupportedMatchStatusError: Match status without resolution strategy
            TimeoutError: Workflow exceeded the request timeout
        """
        async with asyncio.timeout(self.timeout):
            outcome = await self.epix.add_or_match(request.idat)
            mpi = await self._resolve(outcome, request.link)
            return await self._pseudonymize(request.trial, request.lab, mpi)

    async def read(self, trial: str, pseudonym: str) -> IdResponse:
        """
        Resolve a trial pseudonym to the participant and their lab pseudonyms.

        Raises:
            PseudonymNotFoundError: Pseudonym unknown in the trial domain
            TimeoutError: Workflow exceeded the request timeout
        """
        async with asyncio.timeout(self.timeout):
            mpi = await self.gpas.depseudonymize(trial, pseudonym)
            children = await self.gpas.list_child_domains(trial)
            pseudonyms = await self.gpas.list_pseudonyms(children, mpi)

        prefix = f"{trial}_"
        return IdResponse(
            participant=mpi,
            lab={domain.removeprefix(prefix): psns for domain, psns in pseudonyms.items()},
        )

    async def _resolve(self, outcome: MatchOutcome, link: Link | None) -> str:
        if outcome.status in (MatchStatus.NO_MATCH, MatchStatus.PERFECT_MATCH):
            return outcome.mpi
        if outcome.status == MatchStatus.POSSIBLE_MATCH:
            return await self._resolve_possible_match(outcome, link)
        if outcome.status == MatchStatus.MATCH_ERROR:
            raise MatchError(f"E-PIX failed to match identity {outcome.identity_id}")
        raise UnsupportedMatchStatusError(outcome.status.value)

    async def _resolve_possible_match(self, outcome: MatchOutcome, link: Link | None) -> str:
        candidates = await self.epix.possible_matches(outcome.mpi)

        if link is None:
            await self.epix.delete_identity(outcome.identity_id)
            logger.info(
                "Possible match for identity %d, prompting with %d candidate(s)",
                outcome.identity_id,
                len(candidates),
            )
            raise ConflictError(candidates)

        if link.merge:
            await self.epix.delete_identity(outcome.identity_id)
            target = _find_candidate(candidates, link.id)
            logger.info("Identity %d merged into link %d", outcome.identity_id, link.id)
            return target.mpi

        _find_candidate(candidates, link.id)
        for candidate in candidates:
            await self.epix.split_link(candidate.link_id)
        return outcome.mpi

    async def _pseudonymize(self, trial: str, lab: dict[str, int], mpi: str) -> IdResponse:
        await self.gpas.provision_domain(trial)
        for name in lab:
            await self.gpas.provision_domain(
                lab_domain(trial, name), parent=trial, multi_psn=True
            )

        participant = await self.gpas.pseudonymize(trial, mpi)

        secondary: dict[str, list[str]] = {}
        for name, count in lab.items():
            if count == 0:
                continue
            secondary[name] = await self.gpas.pseudonymize_secondary(
                lab_domain(trial, name), mpi, count
            )

        return IdResponse(participant=participant, lab=secondary)


def _find_candidate(candidates: list[Candidate], link_id: int) -> Candidate:
    for candidate in candidates:
        if candidate.link_id == link_id:
            return candidate
    raise LinkNotFoundError(f"Link id {link_id} not found among possible matches")
