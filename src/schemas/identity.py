"""Identity records exchanged with E-PIX."""

from dataclasses import dataclass
from enum import Enum

from src.schemas.identification import Idat, PromptCandidate


class MatchStatus(str, Enum):
    """Outcome of an E-PIX add-or-match call."""

    NO_MATCH = "NO_MATCH"
    PERFECT_MATCH = "PERFECT_MATCH"
    PERFECT_MATCH_WITH_UPDATE = "PERFECT_MATCH_WITH_UPDATE"
    MATCH = "MATCH"
    POSSIBLE_MATCH = "POSSIBLE_MATCH"
    MULTIPLE_MATCH = "MULTIPLE_MATCH"
    EXTERNAL_MATCH = "EXTERNAL_MATCH"
    MATCH_ERROR = "MATCH_ERROR"


@dataclass(frozen=True)
class MatchOutcome:
    """Result of submitting an identity to E-PIX."""

    status: MatchStatus
    identity_id: int
    mpi: str


@dataclass(frozen=True)
class Candidate:
    """An open possible match for an MPI."""

    link_id: int
    idat: Idat
    mpi: str

    def to_prompt(self) -> PromptCandidate:
        """Convert to the caller-facing prompt entry (without the MPI)."""
        return PromptCandidate(link_id=self.link_id, **self.idat.model_dump())
