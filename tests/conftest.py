"""Shared fixtures for the identity-matching test suite."""
import json

import pytest
from fastapi.testclient import TestClient

from priorauth.api.main import create_app
from priorauth.config import IDENTITY_MATCHING_SD, AppSettings, MatchSettings, Settings, StoreSettings
from priorauth.db.store import InMemoryPatientStore
from priorauth.ingestion.loader import PatientLoader
from priorauth.mpi.matcher import MatchConfig, PatientMatcher
from priorauth.mpi.normalizer import PatientNormalizer
from priorauth.mpi.service import MatchService
from priorauth.mpi.validator import ProfileValidator

IDENTIFIER_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v2-0203"

PROFILE_URLS = {
    "base": f"{IDENTITY_MATCHING_SD}/IDI-Patient",
    "l0": f"{IDENTITY_MATCHING_SD}/IDI-Patient-L0",
    "l1": f"{IDENTITY_MATCHING_SD}/IDI-Patient-L1",
}


def build_patient(
    patient_id=None,
    ppn=None,
    dl=None,
    other_identifier=None,
    given=None,
    family=None,
    birth_date=None,
    email=None,
    phone=None,
    address=None,
    photo=False,
    contact=True,
    profile=None,
):
    """Build a Patient resource from the attributes the matcher reads."""
    patient = {"resourceType": "Patient"}
    if patient_id:
        patient["id"] = patient_id
    if profile:
        patient["meta"] = {"profile": [PROFILE_URLS[profile]]}

    identifiers = []
    for code, value in (("PPN", ppn), ("DL", dl)):
        if value:
            identifiers.append({
                "type": {"coding": [{"system": IDENTIFIER_TYPE_SYSTEM, "code": code}]},
                "value": value,
            })
    if other_identifier:
        identifiers.append({"system": "http://hospital.example.org/mrn", "value": other_identifier})
    if identifiers:
        patient["identifier"] = identifiers

    if given or family:
        name = {}
        if family:
            name["family"] = family
        if given:
            name["given"] = [given]
        patient["name"] = [name]

    telecom = []
    if phone:
        telecom.append({"system": "phone", "value": phone})
    if email:
        telecom.append({"system": "email", "value": email})
    if telecom:
        patient["telecom"] = telecom

    if birth_date:
        patient["birthDate"] = birth_date
    if address:
        line, city, state = address
        patient["address"] = [{"use": "home", "line": [line], "city": city, "state": state}]
    if photo:
        patient["photo"] = [{"contentType": "image/png", "url": "http://example.org/photo.png"}]
    if contact:
        patient["contact"] = [{"name": {"family": "Byron", "given": ["Anne"]}}]
    return patient


def match_parameters(patient: dict) -> dict:
    """Wrap a Patient in a $match Parameters resource."""
    return {
        "resourceType": "Parameters",
        "parameter": [{"name": "resource", "resource": patient}],
    }


def bundle_of(patients) -> dict:
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [{"resource": p} for p in patients],
    }


@pytest.fixture
def settings():
    return Settings(app=AppSettings(json_logs=False))


@pytest.fixture
def normalizer(settings):
    return PatientNormalizer(settings.match.profile_urls)


@pytest.fixture
def validator():
    return ProfileValidator()


@pytest.fixture
def store():
    return InMemoryPatientStore()


@pytest.fixture
def loader(store, normalizer):
    return PatientLoader(store, normalizer)


@pytest.fixture
def service(store, normalizer, validator):
    return MatchService(
        store=store,
        normalizer=normalizer,
        validator=validator,
        matcher=PatientMatcher(MatchConfig()),
        timeout_seconds=5.0,
    )


@pytest.fixture
def make_client(tmp_path):
    """
    Factory for TestClients whose store is seeded with the given Patients.

    Keyword arguments are passed to MatchSettings.
    """
    clients = []

    def _make(*patients, auth=None, base_url=None, **match_overrides):
        seed = tmp_path / f"seed-{len(clients)}.json"
        seed.write_text(json.dumps(bundle_of(patients)), encoding="utf-8")
        settings = Settings(
            app=AppSettings(json_logs=False, base_url=base_url),
            match=MatchSettings(**match_overrides),
            store=StoreSettings(backend="memory", seed_bundle=seed),
            auth=auth,
        )
        client = TestClient(create_app(settings))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
