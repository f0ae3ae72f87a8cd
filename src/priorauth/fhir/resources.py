"""FHIR resource builders: OperationOutcome and searchset Bundle."""
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
import uuid


class IssueSeverity(str, Enum):
    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class IssueType(str, Enum):
    INVALID = "invalid"
    STRUCTURE = "structure"
    NOT_FOUND = "not-found"
    SECURITY = "security"
    INFORMATIONAL = "informational"


def operation_outcome(severity: IssueSeverity, code: IssueType, diagnostics: str) -> dict:
    """Build a single-issue OperationOutcome."""
    return {
        "resourceType": "OperationOutcome",
        "id": str(uuid.uuid4()),
        "issue": [
            {
                "severity": severity.value,
                "code": code.value,
                "diagnostics": diagnostics,
            }
        ],
    }


def searchset_bundle(
    resources: Iterable[dict],
    base_url: str,
    total: int | None = None,
    mode: str = "match",
) -> dict:
    """
    Build a searchset Bundle with entries in the given order.

    Args:
        resources: Resources to wrap, already ordered
        base_url: Service base URL used for entry fullUrl
        total: Bundle.total; defaults to the number of entries
        mode: Bundle.entry.search.mode
    """
    entries = []
    for resource in resources:
        entry = {}
        if resource.get("id"):
            entry["fullUrl"] = f"{base_url}/{resource['resourceType']}/{resource['id']}"
        entry["resource"] = resource
        entry["search"] = {"mode": mode}
        entries.append(entry)

    return {
        "resourceType": "Bundle",
        "id": str(uuid.uuid4()),
        "type": "searchset",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total": len(entries) if total is None else total,
        "entry": entries,
    }
