"""
Patient Identity-Matching Server

FastAPI application exposing FHIR Patient/$match and basic Patient
interactions over a pluggable record store.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from priorauth import __version__
from priorauth.api.middleware import REQUEST_ID_HEADER, LoggingMiddleware
from priorauth.api.responses import audit_request, fhir_response, get_context, response_format
from priorauth.api.routes import health, patients
from priorauth.config import Settings, get_settings
from priorauth.context import build_context
from priorauth.db.store import PatientStore
from priorauth.fhir.resources import IssueSeverity, IssueType, operation_outcome
from priorauth.observability.logging import configure_logging
from priorauth.security.audit import AuditAction, AuditLogger, AuditOutcome
from priorauth.security.auth import AuthorizationError

logger = structlog.get_logger(__name__)

METHOD_ACTIONS = {
    "POST": AuditAction.EXECUTE,
    "PUT": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}


async def authorization_error_handler(request: Request, exc: AuthorizationError):
    """Render a failed bearer-token check as a 401 OperationOutcome."""
    logger.warning("Request not authorized", path=request.url.path, error=str(exc))
    audit_request(
        get_context(request),
        request,
        METHOD_ACTIONS.get(request.method, AuditAction.READ),
        AuditOutcome.MINOR_FAILURE,
    )
    outcome = operation_outcome(IssueSeverity.ERROR, IssueType.SECURITY, str(exc))
    return fhir_response(
        outcome,
        response_format(request),
        status_code=401,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_app(
    settings: Settings | None = None,
    store: PatientStore | None = None,
    audit: AuditLogger | None = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        settings: Server settings; loaded from the environment when omitted
        store: Patient store to serve; built from settings when omitted
        audit: Audit sink; a fresh in-memory sink when omitted

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.app.log_level,
        json_logs=settings.app.json_logs,
        redact=settings.app.redact_phi,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting identity-matching server",
            version=__version__,
            env=settings.app.env,
            store=settings.store.backend,
        )
        context = await build_context(settings, store=store, audit=audit)
        app.state.context = context
        yield
        logger.info("Shutting down identity-matching server")
        await context.close()

    app = FastAPI(
        title="PriorAuth Identity Matching",
        description="FHIR Patient/$match over a Patient record store",
        version=__version__,
        debug=settings.app.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location", REQUEST_ID_HEADER],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(AuthorizationError, authorization_error_handler)

    app.include_router(health.router)
    app.include_router(patients.router)

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "priorauth.api.main:create_app",
        factory=True,
        host=settings.app.api_host,
        port=settings.app.api_port,
    )


if __name__ == "__main__":
    run()
