"""
Tests for the audit trail
"""

from concurrent.futures import ThreadPoolExecutor

from priorauth.security.audit import AuditAction, AuditEvent, AuditLogger, AuditOutcome


class TestAuditLogger:

    def test_record_and_filter(self):
        audit = AuditLogger()
        audit.record(AuditAction.EXECUTE, AuditOutcome.SUCCESS, "POST /Patient/$match")
        audit.record(AuditAction.READ, AuditOutcome.MINOR_FAILURE, "GET /Patient/x", resource_type="Patient", resource_id="x")

        assert len(audit) == 2
        assert [e.description for e in audit.events(outcome=AuditOutcome.MINOR_FAILURE)] == ["GET /Patient/x"]
        assert len(audit.events(description="POST /Patient/$match")) == 1

    def test_bounded(self):
        audit = AuditLogger(max_events=3)
        for i in range(5):
            audit.record(AuditAction.READ, AuditOutcome.SUCCESS, f"GET /Patient/{i}")
        assert [e.description for e in audit.events()] == [f"GET /Patient/{i}" for i in (2, 3, 4)]

    def test_concurrent_appends(self):
        audit = AuditLogger(max_events=None)

        def append(i):
            audit.record(AuditAction.READ, AuditOutcome.SUCCESS, f"GET /Patient/{i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(append, range(200)))
        assert len(audit) == 200


class TestAuditEvent:

    def test_to_fhir(self):
        event = AuditEvent(
            action=AuditAction.DELETE,
            outcome=AuditOutcome.SERIOUS_FAILURE,
            description="DELETE /Patient/A",
            resource_type="Patient",
            resource_id="A",
            client_address="10.0.0.1",
        )
        resource = event.to_fhir()

        assert resource["resourceType"] == "AuditEvent"
        assert resource["action"] == "D"
        assert resource["outcome"] == "8"
        assert resource["type"]["code"] == "rest"
        assert resource["agent"][0]["network"]["address"] == "10.0.0.1"
        assert resource["entity"] == [{"what": {"reference": "Patient/A"}}]
        assert not event.success
