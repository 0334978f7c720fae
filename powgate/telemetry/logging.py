from __future__ import annotations

import logging
import os
from typing import Any, Mapping

import structlog


def _get_log_level() -> int:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level, logging.INFO)


def init_logging() -> None:
    """Configure structlog + stdlib logging for JSON output without client identifiers.

    Events: ``request`` (action, duration_ms, result, status), ``pow.verification``
    (outcome, reason, difficulty), ``pow.extraction_failed`` and
    ``pow.nonce_generation_failed`` (error). Every line carries ts, level and,
    inside a request, trace_id.
    """
    logging.basicConfig(level=_get_log_level(), format="%(message)s")

    # the uvicorn access log prints client addresses; the request event replaces it
    logging.getLogger("uvicorn.access").disabled = True

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            _rename_level_to_lower,
            _drop_unwanted_keys,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
        cache_logger_on_first_use=True,
    )


def _rename_level_to_lower(logger: Any, method_name: str, event_dict: Mapping[str, Any]):
    level = event_dict.get("level") or event_dict.get("levelname")
    if level:
        event_dict = dict(event_dict)
        event_dict["level"] = str(level).lower()
        event_dict.pop("levelname", None)
    return event_dict


# Neither IPs nor request data (the proof input) may leak into logs
UNWANTED_KEYS = {"client", "client_ip", "headers", "request_headers", "client_addr", "data"}


def _drop_unwanted_keys(logger: Any, method_name: str, event_dict: Mapping[str, Any]):
    if not UNWANTED_KEYS.intersection(event_dict.keys()):
        return event_dict
    clean = {k: v for k, v in event_dict.items() if k not in UNWANTED_KEYS}
    return clean


def get_logger() -> structlog.stdlib.BoundLogger:  # type: ignore[name-defined]
    return structlog.get_logger()
