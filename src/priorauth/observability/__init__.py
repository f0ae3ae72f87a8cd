"""Logging setup."""
from priorauth.observability.logging import configure_logging, redact_phi

__all__ = ["configure_logging", "redact_phi"]
