"""
Patient Endpoints

FHIR Patient interactions:
- POST /Patient/$match: identity matching against the record store
- GET /Patient: list stored Patients, or search them by identifier
- GET /Patient/{id}: read
- DELETE /Patient/{id}: delete

Every request leaves exactly one audit entry, whatever its outcome.
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends, Query, Request

from priorauth.api.responses import (
    audit_request,
    body_format,
    fhir_response,
    get_context,
    response_format,
)
from priorauth.context import ServerContext
from priorauth.db.store import StoreError
from priorauth.fhir.resources import IssueSeverity, IssueType, operation_outcome, searchset_bundle
from priorauth.mpi.service import PROCESS_FAILED, MatchSuccess
from priorauth.security.audit import AuditAction, AuditOutcome
from priorauth.security.auth import authorize

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/Patient", tags=["Patient"], dependencies=[Depends(authorize)])

IDENTIFIER_COLUMNS = ("ppn", "dl", "other_identifier")


def _identifier_value(token: str) -> str:
    """Value part of a `system|value` or bare `value` token."""
    return token.split("|", 1)[1] if "|" in token else token


def _fatal_outcome() -> dict:
    return operation_outcome(IssueSeverity.FATAL, IssueType.STRUCTURE, PROCESS_FAILED)


@router.post("/$match")
async def match_patient(
    request: Request,
    context: ServerContext = Depends(get_context),
):
    """
    Patient/$match operation.

    The body is a Parameters resource whose first parameter holds the input
    Patient, in FHIR JSON or XML per Content-Type. Returns a searchset Bundle
    of ranked candidates or an OperationOutcome.
    """
    in_format = body_format(request)
    out_format = response_format(request, default=in_format)
    base_url = context.base_url(str(request.base_url))

    try:
        body = await request.body()
        result = await context.match_service.match(body, in_format, base_url)
    except asyncio.CancelledError:
        logger.warning("Patient match cancelled", path=request.url.path)
        audit_request(context, request, AuditAction.EXECUTE, AuditOutcome.MINOR_FAILURE)
        raise

    details = {"status": result.status_code}
    if isinstance(result, MatchSuccess):
        details["total"] = result.ranked.total
    audit_request(context, request, AuditAction.EXECUTE, result.audit_outcome, **details)

    return fhir_response(
        result.resource,
        out_format,
        status_code=result.status_code,
        headers={"Location": f"{base_url}/Patient"},
    )


@router.get("")
async def search_patients(
    request: Request,
    identifier: str | None = Query(default=None, description="Identifier as value or system|value"),
    context: ServerContext = Depends(get_context),
):
    """List every stored Patient, or those carrying a given identifier."""
    fmt = response_format(request)
    base_url = context.base_url(str(request.base_url))

    if identifier is not None and not _identifier_value(identifier).strip():
        audit_request(context, request, AuditAction.READ, AuditOutcome.MINOR_FAILURE)
        outcome = operation_outcome(
            IssueSeverity.ERROR,
            IssueType.INVALID,
            "The identifier search parameter must have a value.",
        )
        return fhir_response(outcome, fmt, status_code=400)

    try:
        if identifier is None:
            resources = [r async for r in context.store.list_all()]
        else:
            value = _identifier_value(identifier).strip()
            constraints = {column: {value} for column in IDENTIFIER_COLUMNS}
            resources = [r async for r in context.store.search(constraints, conjunction="or")]
    except StoreError as e:
        logger.error("Patient search failed", error=str(e))
        audit_request(context, request, AuditAction.READ, AuditOutcome.SERIOUS_FAILURE)
        return fhir_response(_fatal_outcome(), fmt, status_code=500)

    audit_request(context, request, AuditAction.READ, AuditOutcome.SUCCESS, total=len(resources))
    return fhir_response(searchset_bundle(resources, base_url=base_url), fmt)


@router.get("/{patient_id}")
async def read_patient(
    patient_id: str,
    request: Request,
    context: ServerContext = Depends(get_context),
):
    """Read a Patient by id."""
    fmt = response_format(request)
    try:
        resource = await context.store.read(patient_id)
    except StoreError as e:
        logger.error("Patient read failed", patient_id=patient_id, error=str(e))
        audit_request(context, request, AuditAction.READ, AuditOutcome.SERIOUS_FAILURE, patient_id)
        return fhir_response(_fatal_outcome(), fmt, status_code=500)

    if resource is None:
        audit_request(context, request, AuditAction.READ, AuditOutcome.MINOR_FAILURE, patient_id)
        outcome = operation_outcome(
            IssueSeverity.ERROR, IssueType.NOT_FOUND, f"Patient/{patient_id} not found"
        )
        return fhir_response(outcome, fmt, status_code=404)

    audit_request(context, request, AuditAction.READ, AuditOutcome.SUCCESS, patient_id)
    return fhir_response(resource, fmt)


@router.delete("/{patient_id}")
async def delete_patient(
    patient_id: str,
    request: Request,
    context: ServerContext = Depends(get_context),
):
    """Delete a Patient by id."""
    fmt = response_format(request)
    try:
        deleted = await context.store.delete(patient_id)
    except StoreError as e:
        logger.error("Patient delete failed", patient_id=patient_id, error=str(e))
        audit_request(context, request, AuditAction.DELETE, AuditOutcome.SERIOUS_FAILURE, patient_id)
        return fhir_response(_fatal_outcome(), fmt, status_code=500)

    if not deleted:
        audit_request(context, request, AuditAction.DELETE, AuditOutcome.MINOR_FAILURE, patient_id)
        outcome = operation_outcome(
            IssueSeverity.ERROR, IssueType.NOT_FOUND, f"Patient/{patient_id} not found"
        )
        return fhir_response(outcome, fmt, status_code=404)

    logger.info("Patient deleted", patient_id=patient_id)
    audit_request(context, request, AuditAction.DELETE, AuditOutcome.SUCCESS, patient_id)
    outcome = operation_outcome(
        IssueSeverity.INFORMATION, IssueType.INFORMATIONAL, f"Deleted Patient/{patient_id}"
    )
    return fhir_response(outcome, fmt)
