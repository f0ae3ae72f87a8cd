"""
FHIR JSON/XML Codec

Resources travel through the server as JSON-shaped dicts. This module decodes
request bodies in either FHIR format into that shape and renders dicts back
out in the negotiated format.

XML goes through the fhir.resources (R4B) models in both directions, so
element cardinality and primitive types come from the FHIR definitions.
JSON bodies are decoded as-is; the normalizer tolerates malformed elements.
"""
from collections.abc import Mapping
from enum import Enum
import json
import xml.etree.ElementTree as ET

import structlog
from fhir.resources.R4B import get_fhir_model_class
from pydantic import ValidationError

logger = structlog.get_logger(__name__)

FHIR_NS = "http://hl7.org/fhir"

ET.register_namespace("", FHIR_NS)

# Elements dropped from an XML body when they are the only invalid content
TOLERATED_ELEMENTS = frozenset({"birthDate"})


class FhirFormat(str, Enum):
    JSON = "json"
    XML = "xml"

    @property
    def media_type(self) -> str:
        return f"application/fhir+{self.value}"

    @property
    def content_type(self) -> str:
        return f"{self.media_type}; charset=utf-8"


MEDIA_TYPES = {
    "application/fhir+json": FhirFormat.JSON,
    "application/json": FhirFormat.JSON,
    "application/json+fhir": FhirFormat.JSON,
    "application/fhir+xml": FhirFormat.XML,
    "application/xml": FhirFormat.XML,
    "application/xml+fhir": FhirFormat.XML,
    "text/xml": FhirFormat.XML,
}


class FhirParseError(ValueError):
    """Raised when a body cannot be decoded as a FHIR resource."""


def format_from_media_type(header: str | None) -> FhirFormat | None:
    """
    Resolve a Content-Type or Accept header to a FHIR format.

    For Accept lists the first recognized media type wins; wildcards and
    unknown types resolve to None.
    """
    if not header:
        return None
    for part in header.split(","):
        media_type = part.split(";")[0].strip().lower()
        fmt = MEDIA_TYPES.get(media_type)
        if fmt is not None:
            return fmt
    return None


def model_class(resource_type: str):
    """fhir.resources R4B model class for a resource type."""
    try:
        return get_fhir_model_class(resource_type)
    except (KeyError, ValueError) as e:
        raise FhirParseError(f"Unknown FHIR resource type: {resource_type}") from e


# =============================================================================
# Decoding
# =============================================================================

def parse(body: str | bytes, fmt: FhirFormat) -> dict:
    """Decode a FHIR resource body into a dict."""
    if fmt is FhirFormat.XML:
        return parse_xml(body)
    return parse_json(body)


def parse_json(body: str | bytes) -> dict:
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise FhirParseError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("resourceType"), str):
        raise FhirParseError("JSON body is not a FHIR resource (missing resourceType)")
    return data


def parse_xml(body: str | bytes) -> dict:
    """
    Decode FHIR XML through the R4B model of its root element.

    A body whose only validation errors sit in tolerated elements (a
    malformed birthDate) is decoded without those elements.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise FhirParseError(f"Invalid XML: {e}") from e

    namespace, resource_type = _split_tag(root.tag)
    if namespace != FHIR_NS:
        raise FhirParseError(f"Unexpected XML namespace: {namespace}")
    resource_class = model_class(resource_type)

    try:
        resource = resource_class.model_validate_xml(body)
    except ValidationError as e:
        if not _only_tolerated_errors(e):
            raise FhirParseError(f"Invalid {resource_type}: {e}") from e
        logger.warning(
            "Dropping invalid elements from XML body",
            elements=sorted(TOLERATED_ELEMENTS),
            resource_type=resource_type,
        )
        _remove_elements(root, TOLERATED_ELEMENTS)
        try:
            resource = resource_class.model_validate_xml(ET.tostring(root, encoding="utf-8"))
        except ValueError as e:
            raise FhirParseError(f"Invalid {resource_type}: {e}") from e
    except ValueError as e:
        raise FhirParseError(f"Invalid {resource_type}: {e}") from e

    data = json.loads(resource.model_dump_json(by_alias=True, exclude_none=True))
    data.setdefault("resourceType", resource_type)
    return data


def _split_tag(tag: str) -> tuple[str | None, str]:
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return None, tag


def _only_tolerated_errors(error: ValidationError) -> bool:
    return all(
        any(part in TOLERATED_ELEMENTS for part in item["loc"])
        for item in error.errors()
    )


def _remove_elements(root: ET.Element, names: frozenset[str]) -> None:
    for parent in root.iter():
        for child in list(parent):
            if _split_tag(child.tag)[1] in names:
                parent.remove(child)


# =============================================================================
# Encoding
# =============================================================================

def serialize(resource: Mapping, fmt: FhirFormat) -> str:
    """Render a resource dict in the given format."""
    if fmt is FhirFormat.XML:
        return serialize_xml(resource)
    return json.dumps(resource)


def serialize_xml(resource: Mapping) -> str:
    """Render a resource as FHIR XML via its R4B model; raises ValueError if it does not validate."""
    model = model_class(resource["resourceType"]).model_validate(dict(resource))
    xml = model.model_dump_xml()
    return xml.decode("utf-8") if isinstance(xml, bytes) else xml
