"""Tests for E-PIX request and response shapes."""

import json
from datetime import date

import defusedxml.ElementTree as ET
import pytest

from src.codec import epix, soap
from src.exceptions import DecodeError
from src.schemas.identification import Idat
from src.schemas.identity import MatchStatus
from tests.fake_ttp import add_patient_response, possible_match_xml, soap_response


def response_element(operation: str, content: str = ""):
    root = ET.fromstring(soap_response(operation, content))
    return next(iter(root.find(f"{{{soap.SOAP_NS}}}Body")))


class TestAddPatient:
    """Tests for $addPatient."""

    def test_add_patient_request(self, idat: Idat) -> None:
        """Domain, source, save action and identity are sent."""
        body = json.loads(epix.add_patient_request(idat, "kks", "gateway"))

        params = {p["name"]: p for p in body["parameter"]}
        assert params["domain"]["valueString"] == "kks"
        assert params["source"]["valueString"] == "gateway"
        assert params["saveAction"]["valueCoding"]["code"] == epix.SAVE_ACTION
        assert params["identity"]["resource"]["resourceType"] == "Patient"

    def test_parse_match_result(self) -> None:
        """Status, MPI and the submitted identity id are extracted."""
        resource = add_patient_response("POSSIBLE_MATCH", "1001000000022", (3, 9))

        outcome = epix.parse_match_result(resource)

        assert outcome.status == MatchStatus.POSSIBLE_MATCH
        assert outcome.mpi == "1001000000022"
        assert outcome.identity_id == 9

    def test_parse_match_result_rejects_unknown_status(self) -> None:
        with pytest.raises(DecodeError, match="Unknown E-PIX match status"):
            epix.parse_match_result(add_patient_response("SOMETHING_NEW"))

    def test_parse_match_result_requires_mpi(self) -> None:
        """Identifiers of other systems are not taken as MPI."""
        resource = add_patient_response()
        person = resource["parameter"][0]["part"][1]["resource"]
        person["identifier"] = [{"system": "urn:other", "value": "x"}]

        with pytest.raises(DecodeError, match="MPI identifier"):
            epix.parse_match_result(resource)

    def test_parse_match_result_requires_identity_link(self) -> None:
        resource = add_patient_response(identity_ids=())

        with pytest.raises(DecodeError, match="identity id"):
            epix.parse_match_result(resource)

    def test_parse_match_result_rejects_malformed_link(self) -> None:
        """A link target that is not an object is malformed."""
        resource = add_patient_response()
        person = resource["parameter"][0]["part"][1]["resource"]
        person["link"] = [{"target": "Patient/7"}]

        with pytest.raises(DecodeError, match="Person.link.target"):
            epix.parse_match_result(resource)

    def test_parse_match_result_rejects_malformed_status(self) -> None:
        resource = add_patient_response()
        resource["parameter"][0]["part"][0]["valueCoding"] = "NO_MATCH"

        with pytest.raises(DecodeError, match="valueCoding"):
            epix.parse_match_result(resource)


class TestPossibleMatches:
    """Tests for getPossibleMatchesForPerson."""

    def test_parse_possible_matches(self) -> None:
        """Every returned match becomes a candidate."""
        element = response_element(
            "getPossibleMatchesForPerson",
            possible_match_xml(11, "1001000000099") + possible_match_xml(12, "1001000000100"),
        )

        candidates = epix.parse_possible_matches(element)

        assert [c.link_id for c in candidates] == [11, 12]
        assert candidates[0].mpi == "1001000000099"
        assert candidates[0].idat.birth_date == date(1981, 11, 2)
        assert candidates[0].idat.postal_code == "17489"

    def test_parse_possible_matches_empty(self) -> None:
        element = response_element("getPossibleMatchesForPerson")

        assert epix.parse_possible_matches(element) == []

    def test_parse_possible_matches_rejects_invalid_date(self) -> None:
        element = response_element(
            "getPossibleMatchesForPerson",
            possible_match_xml(11, "1001000000099", birth_date="yesterday"),
        )

        with pytest.raises(DecodeError, match="Invalid E-PIX date"):
            epix.parse_possible_matches(element)

    @pytest.mark.parametrize(
        "field",
        [
            "<birthPlace>Greifswald</birthPlace>",
            "<zipCode>17489</zipCode>",
            "<city>Greifswald</city>",
        ],
    )
    def test_parse_possible_matches_requires_identity_fields(self, field: str) -> None:
        """Birth place, postal code and city of a candidate are required."""
        element = response_element(
            "getPossibleMatchesForPerson",
            possible_match_xml(11, "1001000000099").replace(field, ""),
        )

        with pytest.raises(DecodeError, match="Missing"):
            epix.parse_possible_matches(element)


class TestManagementRequests:
    """Tests for domain setup requests."""

    def test_add_identifier_domain_request_has_oid(self) -> None:
        content = epix.add_identifier_domain_request("MPI")

        root = ET.fromstring(content)
        oid = root.find(f".//{{{epix.EPIX_NS}}}addIdentifierDomain/identifierDomain/oid")
        assert oid.text.startswith("2.25.")

    def test_add_domain_request_embeds_matching_config(self) -> None:
        content = epix.add_domain_request(
            "kks", "Study participants", "MPI", "gateway", "<matching/>"
        )

        domain = ET.fromstring(content).find(f".//{{{epix.EPIX_NS}}}addDomain/domain")
        assert domain.find("name").text == "kks"
        assert domain.find("mpiDomain/name").text == "MPI"
        assert domain.find("safeSource/name").text == "gateway"
        assert domain.find("config").text == "<matching/>"
