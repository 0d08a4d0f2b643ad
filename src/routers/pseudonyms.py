"""Pseudonym endpoints for study participants."""

import logging

from fastapi import APIRouter

from src.routers.deps import CurrentUserDep, OrchestratorDep
from src.schemas.identification import IdRequest, IdResponse, PromptResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pseudonyms", tags=["Pseudonyms"])


@router.post(
    "",
    response_model=IdResponse,
    responses={409: {"model": PromptResponse, "description": "Possible match found"}},
)
async def create_pseudonyms(
    request: IdRequest,
    orchestrator: OrchestratorDep,
    current_user: CurrentUserDep,
) -> IdResponse:
    """
    Resolve a participant in E-PIX and create their pseudonyms.

    Requires a bearer token when OIDC is configured.

    Returns the trial pseudonym as ``participant`` and the requested number of
    secondary pseudonyms per lab. If E-PIX reports a possible match, the
    request is answered with 409 and the candidates; resubmit with ``link``
    set to merge with a candidate or to confirm a new participant.
    """
    logger.info(
        "Create pseudonyms in trial %s for %d lab(s) (user=%s)",
        request.trial,
        len(request.lab),
        current_user.subject or current_user.auth_type,
    )
    return await orchestrator.create(request)


@router.get("/{trial}/{pseudonym}", response_model=IdResponse)
async def read_pseudonyms(
    trial: str,
    pseudonym: str,
    orchestrator: OrchestratorDep,
    current_user: CurrentUserDep,
) -> IdResponse:
    """
    Look up a participant by trial pseudonym.

    Returns the participant's MPI and the existing pseudonyms in every lab
    sub-domain of the trial.
    """
    return await orchestrator.read(trial, pseudonym)
