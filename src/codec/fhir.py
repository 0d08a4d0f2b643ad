"""
FHIR Parameters codec for the E-PIX and gPAS TTP-FHIR gateways.

Operations exchange ``Parameters`` resources as JSON. Error responses carry an
``OperationOutcome`` which is decoded into a ``Fault``.
"""

import json
from collections.abc import Callable
from typing import Any, TypeVar

from src.exceptions import DecodeError, Fault, FaultKind
from src.schemas.identification import Idat

FHIR_CONTENT_TYPE = "application/fhir+json"

EPIX_PATIENT_PROFILE = "https://ths-greifswald.de/fhir/StructureDefinition/epix/Patient"
BIRTH_PLACE_EXTENSION = "http://hl7.org/fhir/StructureDefinition/patient-birthPlace"

T = TypeVar("T")


def parameters(*params: dict[str, Any]) -> dict[str, Any]:
    """Build a Parameters resource from parameter entries."""
    return {"resourceType": "Parameters", "parameter": list(params)}


def string_param(name: str, value: str) -> dict[str, Any]:
    return {"name": name, "valueString": value}


def boolean_param(name: str, value: bool) -> dict[str, Any]:
    return {"name": name, "valueBoolean": value}


def coding_param(name: str, system: str, code: str) -> dict[str, Any]:
    return {"name": name, "valueCoding": {"system": system, "code": code}}


def resource_param(name: str, resource: dict[str, Any]) -> dict[str, Any]:
    return {"name": name, "resource": resource}


def part_param(name: str, *parts: dict[str, Any]) -> dict[str, Any]:
    return {"name": name, "part": list(parts)}


def encode(resource: dict[str, Any]) -> bytes:
    """Serialize a FHIR resource."""
    return json.dumps(resource).encode("utf-8")


def decode(
    status_code: int,
    content: bytes,
    parse: Callable[[dict[str, Any]], T],
) -> T | Fault:
    """
    Decode a TTP-FHIR response into the operation payload or a fault.

    Args:
        status_code: HTTP status code reported by the transport
        content: Raw response body
        parse: Parser turning the Parameters resource into the payload

    Returns:
        Parsed payload on success status, ``Fault`` otherwise

    Raises:
        DecodeError: If the body is not the expected FHIR resource
    """
    success = 200 <= status_code < 300

    try:
        resource = json.loads(content)
    except (ValueError, UnicodeDecodeError) as e:
        if not success:
            raise DecodeError(f"HTTP {status_code} response without OperationOutcome") from e
        raise DecodeError(f"Invalid FHIR response: {e}") from e

    resource_type = resource.get("resourceType") if isinstance(resource, dict) else None

    if not success:
        if resource_type != "OperationOutcome":
            raise DecodeError(f"HTTP {status_code} response without OperationOutcome")
        return _decode_outcome(resource, status_code)

    if resource_type != "Parameters":
        raise DecodeError(f"Expected Parameters resource, got {resource_type}")
    return parse(resource)


def _decode_outcome(outcome: dict[str, Any], status_code: int) -> Fault:
    issues = entries(outcome.get("issue"), "OperationOutcome issue") or [{}]
    issue = issues[0]
    code = str(issue.get("code") or "exception")
    details = mapping(issue.get("details"), "OperationOutcome issue details")
    message = str(issue.get("diagnostics") or details.get("text") or code)

    if code == "not-found" or status_code == 404:
        kind = FaultKind.NOT_FOUND
    elif code == "duplicate":
        kind = FaultKind.DUPLICATE_ENTRY
    elif code in ("invalid", "value", "required"):
        kind = FaultKind.INVALID_PARAMETER
    else:
        kind = FaultKind.OTHER

    return Fault(code=code, message=message, kind=kind)


def find_parameters(resource: dict[str, Any], name: str) -> list[dict[str, Any]]:
    """All entries (parameters or parts) with the given name."""
    key = "parameter" if "parameter" in resource else "part"
    return [p for p in entries(resource.get(key), key) if p.get("name") == name]


def mapping(value: Any, what: str) -> dict[str, Any]:
    """A JSON object; absent values read as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"Malformed {what} in TTP-FHIR response: expected object")
    return value


def entries(value: Any, what: str) -> list[dict[str, Any]]:
    """A JSON array of objects; absent values read as empty."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise DecodeError(f"Malformed {what} in TTP-FHIR response: expected list of objects")
    return value


def find_parameter(resource: dict[str, Any], name: str) -> dict[str, Any]:
    """First entry with the given name; required."""
    found = find_parameters(resource, name)
    if not found:
        raise DecodeError(f"Missing parameter '{name}' in TTP-FHIR response")
    return found[0]


def identifier_value(param: dict[str, Any]) -> str:
    """Value of a required ``valueIdentifier``."""
    value = mapping(param.get("valueIdentifier"), "valueIdentifier").get("value")
    if not value:
        raise DecodeError(f"Parameter '{param.get('name')}' has no identifier value")
    return str(value)


def patient_resource(idat: Idat) -> dict[str, Any]:
    """
    Build an E-PIX Patient resource from participant demographics.

    Given names are split on whitespace; the birth name is sent as a
    second HumanName with use ``maiden``.
    """
    names: list[dict[str, Any]] = [
        {"given": idat.first_name.split(), "family": idat.last_name}
    ]
    if idat.birth_name:
        names.append({"use": "maiden", "family": idat.birth_name})

    return {
        "resourceType": "Patient",
        "meta": {"profile": [EPIX_PATIENT_PROFILE]},
        "name": names,
        "birthDate": idat.birth_date.isoformat(),
        "address": [{"postalCode": idat.postal_code, "city": idat.city}],
        "extension": [
            {
                "url": BIRTH_PLACE_EXTENSION,
                "valueAddress": {"city": idat.birth_place},
            }
        ],
    }
