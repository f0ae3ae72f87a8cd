"""Audit trail and authorization hook."""
from priorauth.security.audit import AuditAction, AuditEvent, AuditLogger, AuditOutcome
from priorauth.security.auth import AuthorizationError, authorize

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditLogger",
    "AuditOutcome",
    "AuthorizationError",
    "authorize",
]
