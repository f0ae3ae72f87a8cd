"""
Patient Loader

Writes Patient resources into the record store, deriving the searchable
columns from the normalized record. Each Patient is validated structurally
with the fhir.resources R4B models before it is stored.
"""

from dataclasses import dataclass, field
from pathlib import Path
import json
import uuid

import structlog
from fhir.resources.R4B.patient import Patient as FHIRPatient

from priorauth.db.store import PatientStore
from priorauth.mpi.normalizer import PatientNormalizer
from priorauth.mpi.retriever import record_columns

logger = structlog.get_logger(__name__)


@dataclass
class LoadReport:
    loaded: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def validate_patient(resource: dict) -> list[str]:
    """Structural validation of a Patient resource; returns error messages."""
    if resource.get("resourceType") != "Patient":
        return [f"Expected a Patient, got {resource.get('resourceType')!r}"]
    try:
        FHIRPatient.model_validate(resource)
    except Exception as e:
        return [f"Patient validation error: {e}"]
    return []


class PatientLoader:
    """
    Loads Patients, or Bundles of Patients, into a store.

    Usage:
        loader = PatientLoader(store, normalizer)
        report = await loader.load_bundle(bundle)
    """

    def __init__(self, store: PatientStore, normalizer: PatientNormalizer):
        self.store = store
        self.normalizer = normalizer

    async def load_patient(self, resource: dict) -> str:
        """Validate and store one Patient; returns its id."""
        errors = validate_patient(resource)
        if errors:
            raise ValueError("; ".join(errors))

        resource = dict(resource)
        resource.setdefault("id", str(uuid.uuid4()))
        record = self.normalizer.normalize(resource)
        await self.store.write(resource["id"], resource, record_columns(record))
        logger.info("Patient loaded", patient_id=resource["id"])
        return resource["id"]

    async def load_bundle(self, bundle: dict) -> LoadReport:
        """Load every Patient entry of a Bundle; other resource types are skipped."""
        report = LoadReport()
        for index, entry in enumerate(bundle.get("entry") or []):
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict) or resource.get("resourceType") != "Patient":
                continue
            try:
                report.loaded.append(await self.load_patient(resource))
            except ValueError as e:
                report.errors.append(f"entry[{index}]: {e}")

        logger.info("Bundle loaded", loaded=len(report.loaded), errors=len(report.errors))
        return report

    async def load(self, data: dict) -> LoadReport:
        """Load a Patient or a Bundle."""
        if data.get("resourceType") == "Bundle":
            return await self.load_bundle(data)
        report = LoadReport()
        try:
            report.loaded.append(await self.load_patient(data))
        except ValueError as e:
            report.errors.append(str(e))
        return report

    async def load_file(self, path: Path) -> LoadReport:
        """Load a JSON file holding a Patient or a Bundle."""
        with open(path, encoding="utf-8") as f:
            return await self.load(json.load(f))
