"""Request and response shapes of the E-PIX operations."""

import uuid
from datetime import date, datetime
from typing import Any
from xml.etree.ElementTree import Element, register_namespace

from pydantic import ValidationError

from src.codec import fhir, soap
from src.exceptions import DecodeError
from src.schemas.identification import Idat
from src.schemas.identity import Candidate, MatchOutcome, MatchStatus

EPIX_NS = "http://service.epix.ttp.icmvc.emau.org/"

MPI_SYSTEM = "https://ths-greifswald.de/fhir/epix/identifier/MPI"
SAVE_ACTION_SYSTEM = "https://ths-greifswald.de/fhir/CodeSystem/epix/SaveAction"

# Don't persist the identity again when E-PIX already knows it exactly,
# only update contact data.
SAVE_ACTION = "DONT_SAVE_ON_PERFECT_MATCH_EXCEPT_CONTACTS"

register_namespace("ser", EPIX_NS)


# TTP-FHIR: $addPatient


def add_patient_request(idat: Idat, domain: str, source: str) -> bytes:
    """Parameters for ``$addPatient``."""
    return fhir.encode(
        fhir.parameters(
            fhir.string_param("domain", domain),
            fhir.string_param("source", source),
            fhir.coding_param("saveAction", SAVE_ACTION_SYSTEM, SAVE_ACTION),
            fhir.resource_param("identity", fhir.patient_resource(idat)),
            fhir.boolean_param("forceReferenceUpdate", False),
        )
    )


def parse_match_result(resource: dict[str, Any]) -> MatchOutcome:
    """
    Extract status, identity id and MPI from an ``$addPatient`` response.

    The ``mpiPerson`` links every identity of the person as
    ``Patient/<identityId>``; the submitted identity is the last one.
    """
    match_result = fhir.find_parameter(resource, "matchResult")

    coding = fhir.mapping(
        fhir.find_parameter(match_result, "matchStatus").get("valueCoding"), "valueCoding"
    )
    try:
        status = MatchStatus(coding.get("code"))
    except ValueError as e:
        raise DecodeError(f"Unknown E-PIX match status: {coding.get('code')}") from e

    person = fhir.mapping(
        fhir.find_parameter(match_result, "mpiPerson").get("resource"), "mpiPerson"
    )
    if person.get("resourceType") != "Person":
        raise DecodeError("Failed to parse mpiPerson from E-PIX response")

    mpi = next(
        (
            i.get("value")
            for i in fhir.entries(person.get("identifier"), "Person.identifier")
            if i.get("system") == MPI_SYSTEM and i.get("value")
        ),
        None,
    )
    if mpi is None:
        raise DecodeError("Failed to parse MPI identifier from E-PIX response")

    identity_ids = []
    for link in fhir.entries(person.get("link"), "Person.link"):
        reference = fhir.mapping(link.get("target"), "Person.link.target").get("reference")
        if isinstance(reference, str) and reference.startswith("Patient/"):
            identity_ids.append(reference.removeprefix("Patient/"))
    if not identity_ids or not identity_ids[-1].isdigit():
        raise DecodeError("Failed to parse identity id from E-PIX response")

    return MatchOutcome(status=status, identity_id=int(identity_ids[-1]), mpi=str(mpi))


# SOAP: epixService


def possible_matches_request(domain: str, mpi: str) -> bytes:
    return soap.encode(
        EPIX_NS,
        "getPossibleMatchesForPerson",
        {"domainName": domain, "mpiId": mpi},
    )


def parse_possible_matches(element: Element) -> list[Candidate]:
    """Candidates from a ``getPossibleMatchesForPersonResponse``."""
    return [_parse_candidate(result) for result in soap.children(element, "return")]


def _parse_candidate(result: Element) -> Candidate:
    matching = soap.child(result, "matchingMPIIdentity")
    identity = soap.child(matching, "identity")
    mpi = soap.child_text(soap.child(matching, "mpiId"), "value")

    contacts = soap.child(identity, "contacts")

    try:
        idat = Idat(
            first_name=soap.child_text(identity, "firstName"),
            last_name=soap.child_text(identity, "lastName"),
            birth_date=_parse_date(soap.child_text(identity, "birthDate")),
            birth_place=soap.child_text(identity, "birthPlace"),
            birth_name=soap.optional_text(identity, "birthName")
            or soap.optional_text(identity, "mothersMaidenName"),
            postal_code=soap.child_text(contacts, "zipCode"),
            city=soap.child_text(contacts, "city"),
        )
    except ValidationError as e:
        raise DecodeError(f"Invalid identity in E-PIX possible match: {e}") from e
    return Candidate(link_id=soap.child_int(result, "linkId"), idat=idat, mpi=mpi)


def _parse_date(value: str) -> date:
    # E-PIX sends dates as midnight timestamps with offset
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as e:
        raise DecodeError(f"Invalid E-PIX date: {value}") from e


def remove_possible_match_request(link_id: int) -> bytes:
    return soap.encode(EPIX_NS, "removePossibleMatch", {"possibleMatchId": link_id})


def deactivate_identity_request(identity_id: int) -> bytes:
    return soap.encode(EPIX_NS, "deactivateIdentity", {"identityId": identity_id})


def delete_identity_request(identity_id: int) -> bytes:
    return soap.encode(EPIX_NS, "deleteIdentity", {"identityId": identity_id})


# SOAP: epixManagementService


def add_domain_request(
    name: str,
    description: str,
    identifier_domain: str,
    data_source: str,
    matching_config: str,
) -> bytes:
    return soap.encode(
        EPIX_NS,
        "addDomain",
        {
            "domain": {
                "name": name,
                "label": name,
                "description": description,
                "mpiDomain": {"name": identifier_domain},
                "safeSource": {"name": data_source},
                "config": matching_config,
            }
        },
    )


def add_identifier_domain_request(name: str) -> bytes:
    # OID derived from a random UUID (ITU-T X.667 arc 2.25)
    oid = f"2.25.{uuid.uuid4().int}"
    return soap.encode(
        EPIX_NS,
        "addIdentifierDomain",
        {"identifierDomain": {"name": name, "label": name, "oid": oid}},
    )


def add_source_request(name: str) -> bytes:
    return soap.encode(EPIX_NS, "addSource", {"source": {"name": name, "label": name}})


def parse_void(element: Element) -> None:
    """Responses of operations without a return value."""
    return None
