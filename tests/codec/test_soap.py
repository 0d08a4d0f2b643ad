"""Tests for the SOAP envelope codec."""

from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET
import pytest

from src.codec import soap
from src.exceptions import DecodeError, Fault, FaultKind
from tests.fake_ttp import soap_envelope, soap_fault, soap_response

NS = "http://service.epix.ttp.icmvc.emau.org/"


def parse_text(element: Element) -> str:
    return soap.child_text(element, "value")


class TestEncode:
    """Tests for building request envelopes."""

    def test_encode_wraps_operation_in_envelope(self) -> None:
        """The operation element sits in the SOAP body in its namespace."""
        root = ET.fromstring(soap.encode(NS, "deleteIdentity", {"identityId": 7}))

        body = root.find(f"{{{soap.SOAP_NS}}}Body")
        operation = body.find(f"{{{NS}}}deleteIdentity")
        assert operation is not None
        assert operation.find("identityId").text == "7"

    def test_encode_nests_mappings_and_repeats_lists(self) -> None:
        """Mappings become nested elements and lists repeated elements."""
        content = soap.encode(
            NS,
            "addDomain",
            {"domain": {"name": "kks", "tags": ["a", "b"], "config": {"flag": True}}},
        )
        operation = next(iter(ET.fromstring(content).find(f"{{{soap.SOAP_NS}}}Body")))

        domain = operation.find("domain")
        assert domain.find("name").text == "kks"
        assert [t.text for t in domain.findall("tags")] == ["a", "b"]
        assert domain.find("config/flag").text == "true"

    def test_encode_omits_none(self) -> None:
        """None values produce no element."""
        content = soap.encode(NS, "addDomain", {"name": "kks", "parent": None})

        assert b"parent" not in content

    def test_encode_escapes_text(self) -> None:
        """Embedded XML is sent as escaped text."""
        content = soap.encode(NS, "addDomain", {"config": "<matching/>"})
        operation = next(iter(ET.fromstring(content).find(f"{{{soap.SOAP_NS}}}Body")))

        assert operation.find("config").text == "<matching/>"


class TestDecode:
    """Tests for decoding response envelopes."""

    def test_decode_success_passes_response_element_to_parser(self) -> None:
        """A 2xx response is handed to the operation parser."""
        content = soap_response("getValue", "<value>42</value>")

        assert soap.decode(200, content, "getValueResponse", parse_text) == "42"

    def test_decode_rejects_unexpected_operation(self) -> None:
        """A 2xx response for another operation is malformed."""
        content = soap_response("somethingElse")

        with pytest.raises(DecodeError, match="Expected getValueResponse"):
            soap.decode(200, content, "getValueResponse", parse_text)

    def test_decode_rejects_empty_body(self) -> None:
        """A 2xx envelope without payload is malformed."""
        with pytest.raises(DecodeError, match="empty body"):
            soap.decode(200, soap_envelope(""), "getValueResponse", parse_text)

    def test_decode_fault_with_exception_detail(self) -> None:
        """Faults carry code, message and the exception kind from the detail."""
        content = soap_fault("domain kks already exists", "DuplicateEntryException")

        result = soap.decode(500, content, "addDomainResponse", parse_text)

        assert result == Fault(
            code="soap:Server",
            message="domain kks already exists",
            kind=FaultKind.DUPLICATE_ENTRY,
        )
        assert result.kind.already_exists

    def test_decode_fault_without_detail(self) -> None:
        """Faults without a known detail are of kind OTHER."""
        result = soap.decode(500, soap_fault("boom"), "addDomainResponse", parse_text)

        assert isinstance(result, Fault)
        assert result.kind == FaultKind.OTHER
        assert not result.kind.already_exists

    def test_decode_error_status_without_fault_is_malformed(self) -> None:
        """A non-2xx response must carry a fault."""
        content = soap_response("getValue", "<value>42</value>")

        with pytest.raises(DecodeError, match="without SOAP fault"):
            soap.decode(500, content, "getValueResponse", parse_text)

    def test_decode_rejects_non_xml(self) -> None:
        """Non-XML bodies are malformed."""
        with pytest.raises(DecodeError, match="Invalid SOAP response"):
            soap.decode(502, b"<html>Bad Gateway", "getValueResponse", parse_text)

    def test_decode_rejects_non_envelope(self) -> None:
        """XML that is not a SOAP envelope is malformed."""
        with pytest.raises(DecodeError, match="Expected SOAP envelope"):
            soap.decode(200, b"<value>42</value>", "getValueResponse", parse_text)

    def test_decode_rejects_entity_expansion(self) -> None:
        """Entity declarations are refused by the parser."""
        content = (
            b'<?xml version="1.0"?>'
            b'<!DOCTYPE lolz [<!ENTITY lol "lol">]>'
            b"<value>&lol;</value>"
        )

        with pytest.raises(DecodeError):
            soap.decode(200, content, "getValueResponse", parse_text)

    def test_parser_errors_propagate(self) -> None:
        """Missing required elements in the payload are malformed."""
        content = soap_response("getValue")

        with pytest.raises(DecodeError, match="Missing <value>"):
            soap.decode(200, content, "getValueResponse", parse_text)


class TestHelpers:
    """Tests for element lookup helpers."""

    def test_optional_text_treats_blank_as_missing(self) -> None:
        element = ET.fromstring("<a><b>  </b><c>x</c></a>")

        assert soap.optional_text(element, "b") is None
        assert soap.optional_text(element, "c") == "x"
        assert soap.optional_text(element, "d") is None

    def test_child_int_rejects_non_integer(self) -> None:
        element = ET.fromstring("<a><linkId>abc</linkId></a>")

        with pytest.raises(DecodeError, match="not an integer"):
            soap.child_int(element, "linkId")
