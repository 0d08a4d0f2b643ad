"""Request and response shapes of the gPAS operations."""

from typing import Any
from xml.etree.ElementTree import Element, register_namespace

from src.codec import fhir, soap
from src.exceptions import DecodeError

GPAS_NS = "http://psn.ttp.ganimed.icmvc.emau.org/"

CHECK_DIGIT_CLASS = "org.emau.icmvc.ganimed.ttp.psn.generator.NoCheckDigits"
ALPHABET = "org.emau.icmvc.ganimed.ttp.psn.alphabets.Symbol32"
PSN_LENGTH = 16

register_namespace("psn", GPAS_NS)


# TTP-FHIR: $pseudonymizeAllowCreate, $dePseudonymize


def pseudonymize_request(domain: str, original: str) -> bytes:
    return fhir.encode(
        fhir.parameters(
            fhir.string_param("target", domain),
            fhir.string_param("original", original),
        )
    )


def depseudonymize_request(domain: str, pseudonym: str) -> bytes:
    return fhir.encode(
        fhir.parameters(
            fhir.string_param("target", domain),
            fhir.string_param("pseudonym", pseudonym),
        )
    )


def parse_pseudonym(resource: dict[str, Any]) -> str:
    """Pseudonym from a ``$pseudonymizeAllowCreate`` response."""
    result = fhir.find_parameter(resource, "pseudonym")
    return fhir.identifier_value(fhir.find_parameter(result, "pseudonym"))


def parse_original(resource: dict[str, Any]) -> str | None:
    """
    Original value from a ``$dePseudonymize`` response.

    Returns:
        The original value, or None if gPAS reported the pseudonym as unknown
    """
    result = fhir.find_parameter(resource, "pseudonym")
    if fhir.find_parameters(result, "error"):
        return None
    return fhir.identifier_value(fhir.find_parameter(result, "original"))


# TTP-FHIR: $pseudonymize-secondary


def secondary_request(domain: str, original: str, count: int) -> bytes:
    return fhir.encode(
        fhir.parameters(
            fhir.part_param(
                "original",
                fhir.string_param("target", domain),
                fhir.string_param("value", original),
                fhir.string_param("count", str(count)),
            )
        )
    )


def parse_secondary(resource: dict[str, Any], count: int) -> list[str]:
    """Secondary pseudonyms; gPAS has to return exactly ``count`` values."""
    pseudonyms = [
        fhir.identifier_value(value)
        for result in fhir.find_parameters(resource, "secondarypseudonym")
        for value in fhir.find_parameters(result, "value")
    ]
    if len(pseudonyms) != count:
        raise DecodeError(
            f"Requested {count} secondary pseudonyms, gPAS returned {len(pseudonyms)}"
        )
    return pseudonyms


# SOAP: DomainService


def add_domain_request(
    name: str,
    parent: str | None = None,
    multi_psn: bool = False,
    label: str | None = None,
    prefix: str | None = None,
) -> bytes:
    return soap.encode(
        GPAS_NS,
        "addDomain",
        {
            "domainDTO": {
                "name": name,
                "label": label or name,
                "checkDigitClass": CHECK_DIGIT_CLASS,
                "alphabet": ALPHABET,
                "parentDomainNames": parent,
                "config": {
                    "psnLength": PSN_LENGTH,
                    "psnPrefix": prefix,
                    "psnsDeletable": False,
                    "multiPsnDomain": multi_psn,
                    "sendNotificationsWeb": True,
                },
            }
        },
    )


def get_domain_request(name: str) -> bytes:
    return soap.encode(GPAS_NS, "getDomain", {"domainName": name})


def parse_child_domains(element: Element) -> list[str]:
    """Child domain names from a ``getDomainResponse``."""
    domain = soap.child(element, "domain")
    return [
        (c.text or "").strip()
        for c in soap.children(domain, "childDomainNames")
        if (c.text or "").strip()
    ]


# SOAP: gpasService


def get_pseudonyms_for_request(value: str, domain: str) -> bytes:
    return soap.encode(
        GPAS_NS,
        "getPseudonymsFor",
        {"value": value, "domainName": domain},
    )


def parse_pseudonyms_for(element: Element) -> list[str]:
    """Pseudonyms from a ``getPseudonymsForResponse``."""
    return [
        (psn.text or "").strip()
        for result in soap.children(element, "return")
        for psn in soap.children(result, "psn")
        if (psn.text or "").strip()
    ]
