"""FHIR response rendering and request helpers shared by the routes."""
from fastapi import Request, Response

from priorauth.context import ServerContext
from priorauth.fhir.codec import FhirFormat, format_from_media_type, serialize
from priorauth.security.audit import AuditAction, AuditOutcome


def get_context(request: Request) -> ServerContext:
    """FastAPI dependency returning the server context."""
    return request.app.state.context


def body_format(request: Request) -> FhirFormat:
    """Format of the request body, from Content-Type; JSON when unrecognized."""
    return format_from_media_type(request.headers.get("content-type")) or FhirFormat.JSON


def response_format(request: Request, default: FhirFormat = FhirFormat.JSON) -> FhirFormat:
    """Negotiate the response format from Accept, falling back to `default`."""
    return format_from_media_type(request.headers.get("accept")) or default


def fhir_response(
    resource: dict,
    fmt: FhirFormat,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> Response:
    return Response(
        content=serialize(resource, fmt),
        status_code=status_code,
        media_type=fmt.content_type,
        headers=headers,
    )


def audit_request(
    context: ServerContext,
    request: Request,
    action: AuditAction,
    outcome: AuditOutcome,
    resource_id: str | None = None,
    **details,
) -> str:
    """Record the single audit entry for a request."""
    return context.audit.record(
        action=action,
        outcome=outcome,
        description=f"{request.method} {request.url.path}",
        resource_type="Patient",
        resource_id=resource_id,
        client_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
        details=details,
    )
