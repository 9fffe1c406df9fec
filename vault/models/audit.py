"""
Audit Models for Vault

An audit event is written for each stored record that is created, changed
or removed, and for each computation that had to leave records out. The
trail answers two questions: who touched a record, and why a total differs
from what the user expected.

DESIGN DECISION: The audit trail only grows. Events are never edited or
removed once written.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from vault.models.results import Diagnostics


class AuditEventType(str, Enum):
    """What happened."""
    # Record lifecycle
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    PARTICIPANT_STATUS_CHANGED = "participant_status_changed"

    # Computations
    DIAGNOSTICS_REPORTED = "diagnostics_reported"
    SERIES_COMPUTED = "series_computed"

    # Infrastructure
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Log level the event is emitted at. Values match structlog method names."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """One entry in the audit trail."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="UTC time the event was created"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # The record the event is about, if any
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection name, e.g. 'expenses' or 'split_participants'"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by every event of one user action, e.g. a dashboard load"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Flat keyword arguments for a structlog call."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_document(self) -> dict:
        """JSON-compatible document for the `audit_events` collection."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """
    Constructors for the events the services and dashboard emit.

    Usage:
        event = AuditEventBuilder.record_created("expenses", expense.id)
        event = AuditEventBuilder.diagnostics_reported("dashboard", diagnostics)
    """

    @staticmethod
    def record_created(
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record created in {collection}",
        )

    @staticmethod
    def record_updated(
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record updated in {collection}",
        )

    @staticmethod
    def record_deleted(
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record deleted from {collection}",
        )

    @staticmethod
    def participant_status_changed(
        participant_id: UUID,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTICIPANT_STATUS_CHANGED,
            entity_type="split_participants",
            entity_id=participant_id,
            correlation_id=correlation_id,
            description=f"Share status changed: {old_status} -> {new_status}",
            details={
                "old_status": old_status,
                "new_status": new_status,
            },
        )

    @staticmethod
    def diagnostics_reported(
        computation: str,
        diagnostics: Diagnostics,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DIAGNOSTICS_REPORTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=(
                f"{computation}: skipped {diagnostics.skipped_count} record(s)"
            ),
            details={
                "computation": computation,
                "malformed": diagnostics.malformed_count,
                "orphaned": diagnostics.orphaned_count,
                "issues": [
                    issue.model_dump(mode="json") for issue in diagnostics.issues
                ],
            },
        )

    @staticmethod
    def series_computed(
        user_id: UUID,
        period_kind: str,
        computed: int,
        cached: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="users",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"{period_kind} series: {computed} computed, {cached} cached",
            details={
                "period_kind": period_kind,
                "computed": computed,
                "cached": cached,
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Storage operation failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
