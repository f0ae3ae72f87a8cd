"""
Audit Logging

Append-only audit trail with one entry per REST request, renderable as FHIR
AuditEvent resources.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
import threading
import uuid

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

AUDIT_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/audit-event-type"


# =============================================================================
# Audit Event Types
# =============================================================================

class AuditEventType(str, Enum):
    """Types of audit events."""
    REST = "rest"


class AuditAction(str, Enum):
    """FHIR AuditEvent.action codes."""
    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"
    EXECUTE = "E"


class AuditOutcome(str, Enum):
    """FHIR AuditEvent.outcome codes."""
    SUCCESS = "0"
    MINOR_FAILURE = "4"
    SERIOUS_FAILURE = "8"
    MAJOR_FAILURE = "12"


# =============================================================================
# Audit Event Model
# =============================================================================

class AuditEvent(BaseModel):
    """A single audit event."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recorded: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    event_type: AuditEventType = AuditEventType.REST
    action: AuditAction
    outcome: AuditOutcome

    # What and where
    description: str  # e.g. "POST /Patient/$match"
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None

    # Who
    client_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome is AuditOutcome.SUCCESS

    def to_log_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "audit_id": self.id,
            "recorded": self.recorded.isoformat(),
            "event_type": self.event_type.value,
            "action": self.action.value,
            "outcome": self.outcome.value,
            "description": self.description,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "request_id": self.request_id,
        }

    def to_fhir(self) -> dict:
        """Render as a FHIR AuditEvent resource."""
        resource = {
            "resourceType": "AuditEvent",
            "id": self.id,
            "type": {
                "system": AUDIT_TYPE_SYSTEM,
                "code": self.event_type.value,
            },
            "action": self.action.value,
            "recorded": self.recorded.isoformat(),
            "outcome": self.outcome.value,
            "outcomeDesc": self.description,
            "agent": [
                {
                    "requestor": True,
                    "network": {"address": self.client_address, "type": "2"}
                    if self.client_address else None,
                    "name": self.user_agent,
                }
            ],
            "source": {"observer": {"display": "priorauth"}},
        }
        resource["agent"][0] = {k: v for k, v in resource["agent"][0].items() if v is not None}
        if self.resource_type:
            what = {"reference": f"{self.resource_type}/{self.resource_id}"} if self.resource_id \
                else {"display": self.resource_type}
            resource["entity"] = [{"what": what}]
        return resource


# =============================================================================
# Audit Logger
# =============================================================================

class AuditLogger:
    """
    Append-only audit sink.

    Events are kept in memory in arrival order and emitted to the structured
    log. Appends are serialized with a lock so handlers on any thread can
    record safely.
    """

    def __init__(self, max_events: int | None = 10_000):
        self._events: List[AuditEvent] = []
        self._max_events = max_events
        self._lock = threading.Lock()

    def log(self, event: AuditEvent) -> str:
        """
        Record an audit event.

        Returns the event ID.
        """
        logger.info("audit_event", **event.to_log_dict())
        with self._lock:
            self._events.append(event)
            if self._max_events is not None and len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]
        return event.id

    def record(
        self,
        action: AuditAction,
        outcome: AuditOutcome,
        description: str,
        **kwargs,
    ) -> str:
        """Build and record a REST audit event."""
        return self.log(AuditEvent(action=action, outcome=outcome, description=description, **kwargs))

    def events(
        self,
        outcome: AuditOutcome | None = None,
        description: str | None = None,
    ) -> List[AuditEvent]:
        """Snapshot of recorded events, optionally filtered."""
        with self._lock:
            events = list(self._events)
        if outcome is not None:
            events = [e for e in events if e.outcome is outcome]
        if description is not None:
            events = [e for e in events if e.description == description]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
