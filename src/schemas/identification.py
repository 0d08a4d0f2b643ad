"""Schemas for identification endpoints."""

from datetime import date

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Idat(BaseModel):
    """Identifying data (IDAT) of a study participant."""

    model_config = ConfigDict(frozen=True)

    first_name: str = Field(min_length=1, description="Given name(s), space separated")
    last_name: str = Field(min_length=1, description="Family name")
    birth_date: date = Field(description="Date of birth")
    birth_place: str = Field(description="City of birth")
    birth_name: str | None = Field(
        default=None,
        description="Birth (maiden) name if different from last_name",
    )
    postal_code: str = Field(description="Postal code of the current address")
    city: str = Field(description="City of the current address")


class Link(BaseModel):
    """Resolution of a previously prompted possible match."""

    id: int = Field(description="link_id of the chosen prompt candidate")
    merge: bool = Field(
        description="True: participant is the candidate. False: participant is a new person",
    )


class IdRequest(Idat):
    """Request model for creating pseudonyms for a participant."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    trial: str = Field(
        min_length=1,
        validation_alias=AliasChoices("trial", "study"),
        description="Trial (primary gPAS domain) the participant is enrolled in",
    )
    lab: dict[str, int] = Field(
        default_factory=dict,
        description="Number of secondary pseudonyms requested per lab domain",
    )
    link: Link | None = Field(
        default=None,
        description="Only set when resubmitting after a 409 prompt",
    )

    @field_validator("lab")
    @classmethod
    def validate_lab_counts(cls, v: dict[str, int]) -> dict[str, int]:
        """Reject negative counts and empty lab names."""
        for name, count in v.items():
            if not name:
                raise ValueError("Lab domain names must not be empty")
            if count < 0:
                raise ValueError(f"Pseudonym count for lab '{name}' must not be negative")
        return v

    @property
    def idat(self) -> Idat:
        """Demographics part of the request."""
        return Idat(**self.model_dump(include=set(Idat.model_fields)))


class IdResponse(BaseModel):
    """Response model for a resolved participant."""

    participant: str = Field(
        description="Primary pseudonym (create) or MPI (read) of the participant",
    )
    lab: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Secondary pseudonyms per lab domain",
    )


class PromptCandidate(BaseModel):
    """A possible match offered to the caller."""

    link_id: int
    first_name: str
    last_name: str
    birth_date: date
    birth_place: str
    birth_name: str | None = None
    postal_code: str
    city: str


class PromptResponse(BaseModel):
    """Response model returned with 409 when a possible match needs resolution."""

    message: str
    candidates: list[PromptCandidate]
