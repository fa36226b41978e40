"""
Correlated logging for provisioning runs.

Every line emitted while a saga is running carries the organization, the
local user, the Odoo uid once known, and the saga step that produced it.
Inside a Temporal worker the workflow id and activity name are added too.

Passwords and API keys must never reach a logger. Extra fields whose name
looks like a secret are masked by both formatters as a last line.

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(organization_id="org1", local_user_id="u1", saga="provision"):
        logger.info("Resolving remote user")
"""

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


REDACTED = "***"
SECRET_MARKERS = ("password", "passwd", "secret", "api_key", "apikey", "token")

APP_LOGGERS = ("activities", "workflows", "api", "core", "connectors", "scripts")
NOISY_LOGGERS = ("aiohttp", "httpx", "httpcore", "uvicorn.access")


@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers attached to every log line of one provisioning run."""
    organization_id: Optional[str] = None
    local_user_id: Optional[str] = None
    remote_uid: Optional[int] = None
    saga: Optional[str] = None
    saga_step: Optional[str] = None
    workflow_id: Optional[str] = None
    activity_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given non-None values overriding the current ones."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def label(self) -> str:
        """Short "org/user/saga:step/uid:N" tag for human-readable output."""
        parts = [self.organization_id, self.local_user_id]
        if self.saga:
            parts.append(f"{self.saga}:{self.saga_step}" if self.saga_step else self.saga)
        if self.remote_uid is not None:
            parts.append(f"uid:{self.remote_uid}")
        if self.workflow_id:
            parts.append(self.workflow_id[:12])
        return "/".join(p for p in parts if p) or "-"


_current: ContextVar[CorrelationContext] = ContextVar("provisioning_correlation", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _current.get()


def set_correlation_context(ctx: CorrelationContext) -> None:
    _current.set(ctx)


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """
    Layer correlation ids on top of the current ones for the enclosed block.

    Nested blocks inherit outer ids; leaving a block restores what was there
    before, so concurrent sagas on the same loop never see each other's ids.
    """
    ctx = _current.get().merge(**kwargs)
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def _mask(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: REDACTED if any(marker in k.lower() for marker in SECRET_MARKERS) else v
        for k, v in fields.items()
    }


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return _mask(getattr(record, "extra_fields", None) or {})


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line, for log shippers.

        {"timestamp": "...Z", "level": "INFO", "logger": "core.provisioning.provisioner",
         "message": "Remote user created", "organization_id": "org1", "remote_uid": 42}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_correlation_context().to_dict(),
            **_extra_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console output:

        2024-01-09 12:00:00 [INFO ] core.provisioning.provisioner [org1/u1/provision:persist]: Record stored attempt=1
    """

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{stamp} [{record.levelname:5}] {record.name} "
            f"[{get_correlation_context().label()}]: {record.getMessage()}"
        )
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class CorrelatedLogger(logging.LoggerAdapter):
    """
    Adapter accepting an ``extra_fields`` dict on every call.

    Correlation ids come from the context variable at format time, so the
    adapter itself stays stateless and can be shared module-wide.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        fields = kwargs.pop("extra_fields", None) or {}
        kwargs["extra"] = {**(kwargs.get("extra") or {}), "extra_fields": fields}
        return msg, kwargs


_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def configure_logging(
    level: Optional[int] = None,
    json_format: Optional[bool] = None,
    include_temporal: bool = True,
) -> None:
    """
    Install a single stdout handler on the root logger. Idempotent.

    Args:
        level: Log level; defaults to LOG_LEVEL from the environment, else INFO
        json_format: JSON lines instead of console output; defaults to LOG_JSON
        include_temporal: Keep temporalio's own loggers at INFO
    """
    global _configured
    if _configured:
        return

    if level is None:
        level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (usually ``__name__``), cached per name."""
    logger = _loggers.get(name)
    if logger is None:
        configure_logging()
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return logger


# Activity lifecycle lines share one logger per activity name.

def log_activity_start(activity_name: str, **fields) -> float:
    """Log the start of an activity; returns a monotonic start mark."""
    get_logger(f"activities.{activity_name}").info(f"{activity_name} started", extra_fields=fields)
    return time.monotonic()


def log_activity_complete(activity_name: str, started_at: Optional[float] = None, **fields) -> None:
    if started_at is not None:
        fields["duration_ms"] = round((time.monotonic() - started_at) * 1000, 1)
    get_logger(f"activities.{activity_name}").info(f"{activity_name} completed", extra_fields=fields)


def log_activity_error(activity_name: str, error: BaseException, **fields) -> None:
    fields.setdefault("error_type", type(error).__name__)
    get_logger(f"activities.{activity_name}").error(f"{activity_name} failed: {error}", extra_fields=fields)
