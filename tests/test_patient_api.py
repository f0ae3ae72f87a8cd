"""
Tests for the Patient HTTP endpoints
"""

import asyncio
import json

import pytest
from starlette.requests import Request

from conftest import build_patient, match_parameters
from priorauth.api.routes.patients import match_patient
from priorauth.context import build_context
from priorauth.db.store import InMemoryPatientStore
from priorauth.fhir.codec import FhirFormat, parse, serialize
from priorauth.security.audit import AuditAction, AuditOutcome

FHIR_JSON = "application/fhir+json"
FHIR_XML = "application/fhir+xml"

ADA = build_patient(patient_id="A", ppn="X1", given="Ada", family="Lovelace")
ADA_TWIN = build_patient(patient_id="B", ppn="X2", given="Ada", family="Lovelace")
BOB = build_patient(patient_id="C", dl="D7", given="Bob", family="Smith")


def post_match(client, patient, fmt=FhirFormat.JSON, headers=None):
    return client.post(
        "/Patient/$match",
        content=serialize(match_parameters(patient), fmt),
        headers={"Content-Type": fmt.media_type, **(headers or {})},
    )


def audit_of(client):
    return client.app.state.context.audit


class TestMatchEndpoint:

    def test_match_json(self, make_client):
        client = make_client(ADA, ADA_TWIN, BOB)
        response = post_match(client, build_patient(ppn="X1", given="Ada", family="Lovelace"))

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/fhir+json; charset=utf-8"
        assert response.headers["location"] == "http://testserver/Patient"
        bundle = response.json()
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "searchset"
        assert bundle["total"] == 1
        assert [e["resource"]["id"] for e in bundle["entry"]] == ["A"]

    def test_match_xml(self, make_client):
        client = make_client(ADA)
        response = post_match(client, build_patient(ppn="X1"), fmt=FhirFormat.XML)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(FHIR_XML)
        bundle = parse(response.text, FhirFormat.XML)
        assert bundle["total"] == 1
        assert bundle["entry"][0]["resource"]["id"] == "A"

    def test_accept_overrides_body_format(self, make_client):
        client = make_client(ADA)
        response = post_match(client, build_patient(ppn="X1"), headers={"Accept": FHIR_XML})
        assert response.headers["content-type"].startswith(FHIR_XML)
        assert parse(response.text, FhirFormat.XML)["resourceType"] == "Bundle"

    def test_configured_base_url(self, make_client):
        client = make_client(ADA, base_url="https://fhir.example.org/r4/")
        response = post_match(client, build_patient(ppn="X1"))
        assert response.headers["location"] == "https://fhir.example.org/r4/Patient"
        assert response.json()["entry"][0]["fullUrl"] == "https://fhir.example.org/r4/Patient/A"

    def test_invalid_input(self, make_client):
        client = make_client(ADA)
        response = post_match(client, build_patient(dl="Z9", profile="l0", contact=False))

        assert response.status_code == 400
        outcome = response.json()
        assert outcome["resourceType"] == "OperationOutcome"
        assert outcome["issue"][0]["severity"] == "error"
        assert outcome["issue"][0]["code"] == "invalid"
        assert "contact predicate" in outcome["issue"][0]["diagnostics"]

    def test_first_parameter_not_patient(self, make_client):
        client = make_client()
        body = {
            "resourceType": "Parameters",
            "parameter": [{"name": "resource", "resource": {"resourceType": "Observation"}}],
        }
        response = client.post("/Patient/$match", content=json.dumps(body), headers={"Content-Type": FHIR_JSON})
        assert response.status_code == 400
        assert "must contain a Patient" in response.json()["issue"][0]["diagnostics"]

    def test_garbage_body(self, make_client):
        client = make_client()
        response = client.post("/Patient/$match", content="<<<", headers={"Content-Type": FHIR_XML})

        assert response.status_code == 500
        issue = parse(response.text, FhirFormat.XML)["issue"][0]
        assert issue["severity"] == "fatal"
        assert issue["code"] == "structure"
        assert issue["diagnostics"].startswith("Unable to process the request")

    def test_score_floor_setting(self, make_client):
        client = make_client(ADA, ADA_TWIN, score_floor=-10)
        response = post_match(client, build_patient(ppn="X1", given="Ada", family="Lovelace"))
        assert [e["resource"]["id"] for e in response.json()["entry"]] == ["A", "B"]

    def test_max_results_setting(self, make_client):
        client = make_client(ADA, ADA_TWIN, score_floor=-10, max_results=1)
        bundle = post_match(client, build_patient(ppn="X1", given="Ada", family="Lovelace")).json()
        assert len(bundle["entry"]) == 1
        assert bundle["total"] == 2


class TestPatientInteractions:

    def test_list_all(self, make_client):
        client = make_client(ADA, BOB)
        bundle = client.get("/Patient").json()
        assert bundle["total"] == 2
        assert [e["resource"]["id"] for e in bundle["entry"]] == ["C", "A"]

    def test_search_by_identifier(self, make_client):
        client = make_client(ADA, BOB)
        bundle = client.get("/Patient", params={"identifier": "D7"}).json()
        assert [e["resource"]["id"] for e in bundle["entry"]] == ["C"]

        bundle = client.get(
            "/Patient",
            params={"identifier": "http://terminology.hl7.org/CodeSystem/v2-0203|X1"},
        ).json()
        assert [e["resource"]["id"] for e in bundle["entry"]] == ["A"]

    def test_empty_identifier(self, make_client):
        client = make_client(ADA)
        response = client.get("/Patient?identifier=")
        assert response.status_code == 400
        assert response.json()["issue"][0]["code"] == "invalid"

    def test_read(self, make_client):
        client = make_client(ADA)
        response = client.get("/Patient/A")
        assert response.status_code == 200
        assert response.json()["name"][0]["family"] == "Lovelace"

    def test_read_xml(self, make_client):
        client = make_client(ADA)
        response = client.get("/Patient/A", headers={"Accept": FHIR_XML})
        assert parse(response.text, FhirFormat.XML)["id"] == "A"

    def test_read_missing(self, make_client):
        client = make_client()
        response = client.get("/Patient/nobody")
        assert response.status_code == 404
        assert response.json()["issue"][0]["code"] == "not-found"

    def test_delete(self, make_client):
        client = make_client(ADA)
        response = client.delete("/Patient/A")
        assert response.status_code == 200
        assert response.json()["issue"][0]["severity"] == "information"
        assert client.get("/Patient/A").status_code == 404
        assert client.delete("/Patient/A").status_code == 404


class TestAudit:

    def test_one_entry_per_request(self, make_client):
        client = make_client(ADA)
        post_match(client, build_patient(ppn="X1"))
        post_match(client, build_patient(contact=False))
        client.get("/Patient/A")
        client.get("/Patient/nobody")
        client.delete("/Patient/A")

        events = audit_of(client).events()
        assert [(e.description, e.action, e.outcome) for e in events] == [
            ("POST /Patient/$match", AuditAction.EXECUTE, AuditOutcome.SUCCESS),
            ("POST /Patient/$match", AuditAction.EXECUTE, AuditOutcome.MINOR_FAILURE),
            ("GET /Patient/A", AuditAction.READ, AuditOutcome.SUCCESS),
            ("GET /Patient/nobody", AuditAction.READ, AuditOutcome.MINOR_FAILURE),
            ("DELETE /Patient/A", AuditAction.DELETE, AuditOutcome.SUCCESS),
        ]

    def test_fatal_is_serious_failure(self, make_client):
        client = make_client()
        client.post("/Patient/$match", content="{", headers={"Content-Type": FHIR_JSON})
        (event,) = audit_of(client).events()
        assert event.outcome is AuditOutcome.SERIOUS_FAILURE

    def test_health_is_not_audited(self, make_client):
        client = make_client()
        assert client.get("/health").json()["store"] == "memory"
        assert len(audit_of(client)) == 0


class TestHttpBehaviour:

    def test_cors(self, make_client):
        client = make_client(ADA)
        response = client.get("/Patient/A", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_preflight(self, make_client):
        client = make_client()
        response = client.options(
            "/Patient/$match",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_request_id(self, make_client):
        client = make_client()
        assert client.get("/health").headers["x-request-id"]
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["x-request-id"] == "req-42"

    def test_request_id_reaches_audit(self, make_client):
        client = make_client(build_patient(patient_id="A"))
        response = client.get("/Patient/A", headers={"X-Request-ID": "req-7"})
        assert response.headers["x-request-id"] == "req-7"
        (event,) = audit_of(client).events()
        assert event.request_id == "req-7"


class CancellingStore(InMemoryPatientStore):
    async def search(self, constraints, conjunction="or"):
        raise asyncio.CancelledError()
        yield


def match_request(body: bytes) -> Request:
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
        "root_path": "",
        "path": "/Patient/$match",
        "raw_path": b"/Patient/$match",
        "query_string": b"",
        "headers": [(b"content-type", FHIR_JSON.encode())],
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


class TestMatchCancellation:

    async def test_cancelled_match_is_audited_and_reraised(self, settings):
        context = await build_context(settings, store=CancellingStore())
        body = json.dumps(match_parameters(build_patient(ppn="X1"))).encode()

        with pytest.raises(asyncio.CancelledError):
            await match_patient(match_request(body), context)

        (event,) = context.audit.events()
        assert event.action is AuditAction.EXECUTE
        assert event.outcome is AuditOutcome.MINOR_FAILURE
        assert event.description == "POST /Patient/$match"
