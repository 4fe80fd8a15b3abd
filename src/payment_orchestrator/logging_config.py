"""
Structured logging for the orchestrator.

Workflow runs bind ``workflow_id`` and ``order_id`` (or ``webhook_event_id``)
with ``structlog.contextvars``, so every event emitted by the call layer,
processors and stores during a run carries them. Secrets that may appear in
event fields (webhook secrets, processor credentials, payment tokens) are
masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

REDACTED = "***"

SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "credentials",
        "secret",
        "signature",
        "token",
        "webhook_secret",
    }
)


def redact_sensitive_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values of sensitive keys, including one level of nested dicts."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS and value is not None:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if k in SENSITIVE_KEYS and v is not None else v
                for k, v in value.items()
            }
    return event_dict


def add_service_context(service_name: str, environment: str) -> Processor:
    """Build a processor that stamps every event with the service identity."""

    def _add(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("environment", environment)
        return event_dict

    return _add


def configure_logging(
    log_level: str = "INFO",
    format_as_json: bool = True,
    service_name: str = "payment-orchestrator",
    environment: str = "development",
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_as_json: JSON lines for log shipping; otherwise console output
        service_name: Added to every event as ``service``
        environment: Added to every event as ``environment``
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context(service_name, environment),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
    ]

    if format_as_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
