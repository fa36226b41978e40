"""Audit event logging and persistence.

Provides structured audit logging for provisioning actions, from remote
user resolution through deactivation and rollback. Supports multiple
persistence backends. Events never carry secrets.
"""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.observability.logging import get_logger

logger = get_logger(__name__)


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditEventType(str, Enum):
    """Standard audit event types."""
    # Provisioning saga
    PROVISIONING_STARTED = "PROVISIONING_STARTED"
    PROVISIONING_COMPLETED = "PROVISIONING_COMPLETED"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"

    # Remote identity
    REMOTE_USER_ADOPTED = "REMOTE_USER_ADOPTED"
    REMOTE_USER_CREATED = "REMOTE_USER_CREATED"
    REMOTE_USER_REACTIVATED = "REMOTE_USER_REACTIVATED"

    # Credentials
    API_KEY_ISSUED = "API_KEY_ISSUED"
    API_KEY_FALLBACK = "API_KEY_FALLBACK"

    # Deactivation
    DEACTIVATION_COMPLETED = "DEACTIVATION_COMPLETED"
    DEACTIVATION_FAILED = "DEACTIVATION_FAILED"

    # Rollback
    COMPENSATION_COMPLETED = "COMPENSATION_COMPLETED"
    COMPENSATION_FAILED = "COMPENSATION_FAILED"


class AuditEvent(BaseModel):
    """An audit event for tracking provisioning actions."""
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    event_type: str = Field(..., description="Type of event")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    organization_id: Optional[str] = Field(None, description="Organization owning the Odoo database")
    local_user_id: Optional[str] = Field(None, description="Local user concerned")
    remote_uid: Optional[int] = Field(None, description="Odoo res.users id")
    workflow_id: Optional[str] = Field(None, description="Temporal workflow ID")

    # Details
    message: str = Field(..., description="Human-readable message")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Who/what performed the action")


def create_audit_event(
    event_type: AuditEventType,
    message: str,
    severity: AuditSeverity = AuditSeverity.INFO,
    organization_id: Optional[str] = None,
    local_user_id: Optional[str] = None,
    remote_uid: Optional[int] = None,
    workflow_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: str = "system",
) -> AuditEvent:
    """Create a new audit event with auto-generated ID and timestamp.

    Args:
        event_type: Type of event
        message: Human-readable message
        severity: Event severity level
        organization_id: Organization whose database was touched
        local_user_id: Local user concerned
        remote_uid: Odoo user id, once known
        workflow_id: Temporal workflow ID
        details: Additional structured details
        actor: Who/what performed the action

    Returns:
        Configured AuditEvent ready for logging
    """
    return AuditEvent(
        event_id=str(uuid.uuid4()),
        timestamp=datetime.utcnow(),
        event_type=event_type.value,
        severity=severity,
        organization_id=organization_id,
        local_user_id=local_user_id,
        remote_uid=remote_uid,
        workflow_id=workflow_id,
        message=message,
        details=details or {},
        actor=actor,
    )


class AuditBackend(ABC):
    """Abstract base class for audit persistence backends."""

    @abstractmethod
    def log(self, event: AuditEvent) -> None:
        """Persist an audit event."""
        pass

    @abstractmethod
    def query(
        self,
        event_type: Optional[str] = None,
        local_user_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query audit events with filters."""
        pass


def _matches(
    event: AuditEvent,
    event_type: Optional[str],
    local_user_id: Optional[str],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
) -> bool:
    if event_type and event.event_type != event_type:
        return False
    if local_user_id and event.local_user_id != local_user_id:
        return False
    if start_time and event.timestamp < start_time:
        return False
    if end_time and event.timestamp > end_time:
        return False
    return True


class JSONFileAuditBackend(AuditBackend):
    """Audit backend that stores events in JSON files.

    Stores one file per day in YYYY-MM-DD.json format.
    """

    def __init__(self, base_path: Path):
        """Initialize with base directory for audit files."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _get_file_path(self, date: datetime) -> Path:
        """Get file path for a given date."""
        return self.base_path / f"{date.strftime('%Y-%m-%d')}.json"

    def log(self, event: AuditEvent) -> None:
        """Append event to daily file."""
        file_path = self._get_file_path(event.timestamp)

        with self._lock:
            events = []
            if file_path.exists():
                with open(file_path, "r", encoding="utf-8") as f:
                    events = json.load(f)

            events.append(event.model_dump(mode="json"))

            with open(file_path, "w", encoding="utf-8") as f:
                json.dump(events, f, indent=2)

    def query(
        self,
        event_type: Optional[str] = None,
        local_user_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from JSON files."""
        results = []

        if start_time is None:
            start_time = datetime(2020, 1, 1)
        if end_time is None:
            end_time = datetime.utcnow()

        current = datetime(start_time.year, start_time.month, start_time.day)
        while current <= end_time and len(results) < limit:
            file_path = self._get_file_path(current)
            if file_path.exists():
                with open(file_path, "r", encoding="utf-8") as f:
                    events = json.load(f)

                for event_data in events:
                    event = AuditEvent.model_validate(event_data)
                    if not _matches(event, event_type, local_user_id, start_time, end_time):
                        continue
                    results.append(event)
                    if len(results) >= limit:
                        break

            current += timedelta(days=1)

        return results


class InMemoryAuditBackend(AuditBackend):
    """In-memory audit backend for testing."""

    def __init__(self):
        self._events: List[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self._events.append(event)

    def query(
        self,
        event_type: Optional[str] = None,
        local_user_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        results = []
        for event in self._events:
            if not _matches(event, event_type, local_user_id, start_time, end_time):
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def event_types(self) -> List[str]:
        return [event.event_type for event in self._events]

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self._events.clear()


class AuditLogger:
    """Main audit logger that supports multiple backends.

    Usage:
        audit = AuditLogger()
        audit.add_backend(JSONFileAuditBackend(Path("./audit")))

        audit.log_info(
            AuditEventType.REMOTE_USER_CREATED,
            "Created Odoo user 42",
            organization_id="org1",
            local_user_id="u1",
            remote_uid=42,
        )
    """

    def __init__(self):
        self._backends: List[AuditBackend] = []

    def add_backend(self, backend: AuditBackend) -> None:
        """Add an audit backend."""
        self._backends.append(backend)

    def log(self, event: AuditEvent) -> None:
        """Log event to all backends."""
        for backend in self._backends:
            try:
                backend.log(event)
            except Exception as e:
                # Audit failures must not break a saga
                logger.error(f"Audit logging failed for backend {type(backend).__name__}: {e}")

    def log_info(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log an INFO level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.INFO, **kwargs))

    def log_warning(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log a WARN level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.WARN, **kwargs))

    def log_error(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log an ERROR level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.ERROR, **kwargs))

    def log_critical(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log a CRITICAL event (manual intervention required)."""
        self.log(create_audit_event(event_type, message, AuditSeverity.CRITICAL, **kwargs))

    def query(
        self,
        event_type: Optional[str] = None,
        local_user_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from all backends (returns first backend's results)."""
        if not self._backends:
            return []
        return self._backends[0].query(event_type, local_user_id, start_time, end_time, limit)
