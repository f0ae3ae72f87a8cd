"""
Candidate Retriever

Recall side of matching: a disjunctive query over the Patient store using
every attribute present on the input record. Precision is left to the scorer.
"""
from collections.abc import AsyncIterator

import structlog

from priorauth.db.store import PatientStore
from priorauth.mpi.models import Candidate, PatientRecord
from priorauth.mpi.normalizer import PatientNormalizer

logger = structlog.get_logger(__name__)

# Columns used for recall; gender and marital status are stored but too coarse to recall on
RECALL_COLUMNS = (
    "id",
    "ppn",
    "dl",
    "other_identifier",
    "first_name",
    "last_name",
    "dob",
    "address",
    "city",
    "state",
    "email",
    "phone",
)


def _fold(value: str | None) -> set[str]:
    return {value.casefold()} if value else set()


def _exact(value: str | None) -> set[str]:
    return {value} if value else set()


def record_columns(record: PatientRecord) -> dict[str, set[str]]:
    """
    Derive store columns from a normalized record.

    Identifiers are kept exact; other strings are case-folded so store
    equality agrees with the scorer's case-insensitive comparison.
    """
    address = record.home_address
    marital = record.marital_status
    return {
        "id": _exact(record.id),
        "ppn": _exact(record.passport_number),
        "dl": _exact(record.drivers_license),
        "other_identifier": set(record.other_identifiers),
        "first_name": _fold(record.first_name),
        "last_name": _fold(record.last_name),
        "dob": _exact(record.birth_date.isoformat() if record.birth_date else None),
        "gender": _exact(record.gender.value if record.gender else None),
        "marital_status": _exact(f"{marital.system or ''}|{marital.code}" if marital else None),
        "address": _fold(address.line if address else None),
        "city": _fold(address.city if address else None),
        "state": _fold(address.state if address else None),
        "email": _fold(record.email),
        "phone": _fold(record.phone),
    }


def recall_constraints(record: PatientRecord) -> dict[str, set[str]]:
    """Recall columns the record has values for; absent fields add no predicate."""
    columns = record_columns(record)
    return {col: columns[col] for col in RECALL_COLUMNS if columns[col]}


class CandidateRetriever:
    """
    Streams match candidates from the store.

    Results arrive in store recency order (most recently written first);
    the scorer imposes the final order.
    """

    def __init__(self, store: PatientStore, normalizer: PatientNormalizer):
        self.store = store
        self.normalizer = normalizer

    async def candidates(self, record: PatientRecord) -> AsyncIterator[Candidate]:
        constraints = recall_constraints(record)
        if not constraints:
            logger.info("No recall attributes on input record")
            return

        logger.debug("Retrieving candidates", columns=sorted(constraints))
        async for resource in self.store.search(constraints, conjunction="or"):
            yield Candidate(resource=resource, record=self.normalizer.normalize(resource))
