"""Custom exceptions for the TTP gateway service."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.schemas.identity import Candidate


class FaultKind(str, Enum):
    """Structured exception kind carried by a backend fault."""

    DUPLICATE_ENTRY = "DuplicateEntryException"
    DOMAIN_IN_USE = "DomainInUseException"
    INVALID_PARAMETER = "InvalidParameterException"
    UNKNOWN_VALUE = "UnknownValueException"
    NOT_FOUND = "not-found"
    OTHER = "other"

    @property
    def already_exists(self) -> bool:
        return self in (FaultKind.DUPLICATE_ENTRY, FaultKind.DOMAIN_IN_USE)


@dataclass(frozen=True)
class Fault:
    """Error envelope decoded from an E-PIX or gPAS response."""

    code: str
    message: str
    kind: FaultKind = FaultKind.OTHER


class TtpError(Exception):
    """Base exception for TTP gateway errors."""

    pass


class TransportError(TtpError):
    """Network failure, timeout, or retries exhausted against a backend."""

    pass


class DecodeError(TtpError):
    """Backend response did not have the expected shape."""

    pass


class BackendFault(TtpError):
    """Backend answered with a fault envelope."""

    def __init__(self, fault: Fault, context: str | None = None):
        self.fault = fault
        message = fault.message if context is None else f"{context}: {fault.message}"
        super().__init__(message)


class ProvisioningError(BackendFault):
    """Domain, identifier domain, or data source could not be created."""

    pass


class NotFoundError(TtpError):
    """Requested entity does not exist."""

    pass


class PseudonymNotFoundError(NotFoundError):
    """Pseudonym could not be resolved in the given domain."""

    pass


class LinkNotFoundError(NotFoundError):
    """Link id is not part of the current possible-match set."""

    pass


class ConflictError(TtpError):
    """Possible match found; the caller has to choose a candidate."""

    def __init__(self, candidates: list["Candidate"]):
        self.candidates = candidates
        super().__init__(
            f"Found {len(candidates)} possible match(es). "
            "Resubmit with a link to resolve."
        )


class MatchError(TtpError):
    """E-PIX reported MATCH_ERROR for the submitted identity."""

    pass


class UnsupportedMatchStatusError(TtpError):
    """Match status has no resolution strategy."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unsupported match status: {status}")
