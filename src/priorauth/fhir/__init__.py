"""FHIR wire formats and resource builders."""
from priorauth.fhir.codec import FhirFormat, FhirParseError, format_from_media_type, parse, serialize
from priorauth.fhir.resources import IssueSeverity, IssueType, operation_outcome, searchset_bundle

__all__ = [
    "FhirFormat",
    "FhirParseError",
    "format_from_media_type",
    "parse",
    "serialize",
    "IssueSeverity",
    "IssueType",
    "operation_outcome",
    "searchset_bundle",
]
