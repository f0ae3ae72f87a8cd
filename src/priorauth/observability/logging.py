"""
Structured Logging

structlog configuration for the server:
- JSON or console rendering
- ISO timestamps and log levels
- PHI redaction of string values before rendering
"""

import logging
import re
import sys

import structlog

# Regex patterns for PHI that may surface in log values
PHI_PATTERNS = {
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "phone": re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "mrn": re.compile(r"\bMRN\s*:?\s*\d+\b", re.IGNORECASE),
    "date": re.compile(r"\b\d{4}-\d{2}-\d{2}\b|\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),
}

# Keys whose values are never redacted
_SAFE_KEYS = frozenset({"level", "logger", "timestamp", "recorded", "audit_id", "request_id"})


def redact_phi(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace PHI pattern matches in text."""
    for pattern in PHI_PATTERNS.values():
        text = pattern.sub(replacement, text)
    return text


def phi_redaction_processor(logger, method_name, event_dict):
    """Redact PHI from log messages."""
    for key, value in event_dict.items():
        if isinstance(value, str) and key not in _SAFE_KEYS:
            event_dict[key] = redact_phi(value)
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    redact: bool = True,
) -> None:
    """Configure stdlib logging and structlog for the process."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if redact:
        processors.append(phi_redaction_processor)
    processors.append(
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
