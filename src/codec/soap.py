"""
SOAP 1.1 envelope codec for the E-PIX and gPAS web services.

Requests are built with ElementTree; responses are parsed with defusedxml to
prevent XXE attacks. Decoding is driven by the HTTP status code:

- 2xx: the operation response element is handed to an operation parser
- otherwise: the body must carry a ``soap:Fault``, decoded into a ``Fault``

Anything else (no XML, no envelope, missing elements) raises ``DecodeError``.
"""

from collections.abc import Callable, Mapping
from typing import Any, TypeVar
from xml.etree.ElementTree import Element, SubElement, register_namespace, tostring

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from src.exceptions import DecodeError, Fault, FaultKind

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_CONTENT_TYPE = "text/xml; charset=utf-8"

register_namespace("soap", SOAP_NS)

T = TypeVar("T")

_FAULT_KINDS = {kind.value: kind for kind in FaultKind}


def encode(namespace: str, operation: str, params: Mapping[str, Any]) -> bytes:
    """
    Build a SOAP request envelope.

    Args:
        namespace: Target namespace of the web service
        operation: Operation element name (e.g. ``addDomain``)
        params: Operation parameters. Nested mappings become nested elements,
            lists become repeated elements and ``None`` values are omitted.

    Returns:
        UTF-8 encoded envelope
    """
    envelope = Element(f"{{{SOAP_NS}}}Envelope")
    SubElement(envelope, f"{{{SOAP_NS}}}Header")
    body = SubElement(envelope, f"{{{SOAP_NS}}}Body")
    _append(SubElement(body, f"{{{namespace}}}{operation}"), params)
    return tostring(envelope, encoding="utf-8", xml_declaration=True)


def _append(parent: Element, params: Mapping[str, Any]) -> None:
    for name, value in params.items():
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is None:
                continue
            element = SubElement(parent, name)
            if isinstance(item, Mapping):
                _append(element, item)
            elif isinstance(item, bool):
                element.text = "true" if item else "false"
            else:
                element.text = str(item)


def decode(
    status_code: int,
    content: bytes,
    operation: str,
    parse: Callable[[Element], T],
) -> T | Fault:
    """
    Decode a SOAP response into the operation payload or a fault.

    Args:
        status_code: HTTP status code reported by the transport
        content: Raw response body
        operation: Expected local name of the response element
        parse: Parser turning the response element into the payload

    Returns:
        Parsed payload on success status, ``Fault`` otherwise

    Raises:
        DecodeError: If the response is not a well-formed envelope of the
            expected shape
    """
    body = _body(content)

    if not 200 <= status_code < 300:
        fault = child_or_none(body, "Fault")
        if fault is None:
            raise DecodeError(f"HTTP {status_code} response without SOAP fault")
        return _decode_fault(fault)

    payload = next(iter(body), None)
    if payload is None or local_name(payload) != operation:
        found = local_name(payload) if payload is not None else "empty body"
        raise DecodeError(f"Expected {operation} in SOAP body, got {found}")
    return parse(payload)


def _body(content: bytes) -> Element:
    try:
        root = ET.fromstring(content)
    except (ET.ParseError, DefusedXmlException) as e:
        raise DecodeError(f"Invalid SOAP response: {e}") from e

    if root.tag != f"{{{SOAP_NS}}}Envelope":
        raise DecodeError(f"Expected SOAP envelope, got {local_name(root)}")
    body = root.find(f"{{{SOAP_NS}}}Body")
    if body is None:
        raise DecodeError("SOAP envelope without body")
    return body


def _decode_fault(element: Element) -> Fault:
    kind = FaultKind.OTHER
    detail = child_or_none(element, "detail")
    if detail is not None:
        exception = next(iter(detail), None)
        if exception is not None:
            kind = _FAULT_KINDS.get(local_name(exception), FaultKind.OTHER)

    return Fault(
        code=child_text(element, "faultcode"),
        message=child_text(element, "faultstring"),
        kind=kind,
    )


def local_name(element: Element) -> str:
    """Tag name without namespace."""
    return element.tag.rsplit("}", 1)[-1]


def children(element: Element, name: str) -> list[Element]:
    """All direct children with the given local name."""
    return [c for c in element if local_name(c) == name]


def child_or_none(element: Element, name: str) -> Element | None:
    """First direct child with the given local name, if any."""
    return next((c for c in element if local_name(c) == name), None)


def child(element: Element, name: str) -> Element:
    """First direct child with the given local name; required."""
    found = child_or_none(element, name)
    if found is None:
        raise DecodeError(f"Missing <{name}> in <{local_name(element)}>")
    return found


def child_text(element: Element, name: str) -> str:
    """Non-empty text of a required child element."""
    text = (child(element, name).text or "").strip()
    if not text:
        raise DecodeError(f"Empty <{name}> in <{local_name(element)}>")
    return text


def optional_text(element: Element, name: str) -> str | None:
    """Text of an optional child element; blank text counts as absent."""
    found = child_or_none(element, name)
    if found is None:
        return None
    return (found.text or "").strip() or None


def child_int(element: Element, name: str) -> int:
    """Integer value of a required child element."""
    text = child_text(element, name)
    try:
        return int(text)
    except ValueError as e:
        raise DecodeError(f"<{name}> is not an integer: {text}") from e
