"""
Audit Logger

DESIGN DECISION: Writes, status changes and skipped records all leave an
audit trail. When dashboard numbers look wrong, the trail says which
records were left out and why.

Events always go to the structured log. When a record store is supplied
they are also appended to its `audit_events` collection. A failing audit
write is itself logged and then dropped; it never fails the operation that
triggered it.
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from vault.models.audit import AuditEvent, AuditEventBuilder
from vault.models.results import Diagnostics
from vault.services.storage import Collection, RecordStoreInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes audit events to the structured log and, optionally, the store.

    Args:
        storage: Store that keeps the audit trail. None logs locally only.
    """

    def __init__(self, storage: Optional[RecordStoreInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger("vault.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns:
            False if the store rejected the event, True otherwise
        """
        emit = getattr(self._logger, event.severity.value)
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.create(
                Collection.AUDIT_EVENTS,
                event.event_id,
                event.to_document(),
            )
        except Exception as e:
            self._logger.error(
                "audit_write_failed",
                event_id=str(event.event_id),
                event_type=event.event_type.value,
                error=str(e),
            )
            return False

    # -------------------------------------------------------------------------
    # Record lifecycle
    # -------------------------------------------------------------------------

    async def log_record_created(
        self,
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_created(collection, record_id, correlation_id))

    async def log_record_updated(
        self,
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_updated(collection, record_id, correlation_id))

    async def log_record_deleted(
        self,
        collection: str,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(collection, record_id, correlation_id))

    async def log_status_changed(
        self,
        participant_id: UUID,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """A split share moved along its lifecycle."""
        await self.log(AuditEventBuilder.participant_status_changed(
            participant_id=participant_id,
            old_status=old_status,
            new_status=new_status,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Computations
    # -------------------------------------------------------------------------

    async def log_diagnostics(
        self,
        computation: str,
        diagnostics: Diagnostics,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Warn about skipped records. Nothing is logged when none were skipped."""
        if diagnostics.is_clean:
            return
        await self.log(AuditEventBuilder.diagnostics_reported(
            computation=computation,
            diagnostics=diagnostics,
            correlation_id=correlation_id,
        ))

    async def log_series_computed(
        self,
        user_id: UUID,
        period_kind: str,
        computed: int,
        cached: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.series_computed(
            user_id=user_id,
            period_kind=period_kind,
            computed=computed,
            cached=cached,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    A fresh id tying together the events of one user action.

    Screen loads create one and hand it to every event they log.
    """
    return uuid4()


def configure_logging(level: str = "INFO") -> None:
    """
    Route structured logs to stdout at the given level.

    Call once at startup; the level usually comes from `AppSettings.log_level`.
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())
    logging.getLogger().setLevel(level.upper())
