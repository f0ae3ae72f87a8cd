"""Patient record store."""
from priorauth.db.store import (
    InMemoryPatientStore,
    PatientStore,
    PostgresPatientStore,
    StoreError,
    create_store,
)

__all__ = [
    "InMemoryPatientStore",
    "PatientStore",
    "PostgresPatientStore",
    "StoreError",
    "create_store",
]
