"""Notification and audit sinks.

Both only stage rows on the caller's session; the caller's commit makes them
durable together with the state change they describe. A failure to build or
stage a notification is logged and swallowed so it never fails the primary
operation.
"""
import logging
import uuid
from typing import Iterable, Optional

from maintenance_dispatch.domain.enums import AuditAction, NotificationType
from maintenance_dispatch.domain.models import AuditLog, Notification
from maintenance_dispatch.infra.repository import DispatchRepository

logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget user notifications."""

    def __init__(self, repository: DispatchRepository):
        self.repository = repository

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
        related_type: str = "complaint",
    ) -> bool:
        """Stage one notification. Returns False (and logs) on failure."""
        try:
            self.repository.add(
                Notification(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    type=type.value,
                    title=title,
                    message=message,
                    related_id=related_id,
                    related_type=related_type,
                )
            )
        except Exception as e:
            logger.error("Failed to queue notification for user %s (%s): %s", user_id, type.value, e)
            return False
        return True

    async def notify_many(
        self,
        user_ids: Iterable[str],
        type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
        related_type: str = "complaint",
    ) -> int:
        sent = 0
        for user_id in user_ids:
            if await self.notify(user_id, type, title, message, related_id, related_type):
                sent += 1
        return sent


class AuditLogger:
    """Append-only audit trail writer."""

    def __init__(self, repository: DispatchRepository):
        self.repository = repository

    async def record(self, user_id: Optional[str], action: AuditAction, details: str) -> None:
        self.repository.add(
            AuditLog(
                id=str(uuid.uuid4()),
                user_id=user_id,
                action=action.value,
                details=details,
            )
        )
        logger.debug("Audit %s by %s: %s", action.value, user_id, details)
