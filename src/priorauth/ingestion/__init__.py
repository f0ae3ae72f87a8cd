"""Patient ingestion into the record store."""
from priorauth.ingestion.loader import LoadReport, PatientLoader, validate_patient

__all__ = ["LoadReport", "PatientLoader", "validate_patient"]
