"""
Lifecycle Notifications

Lifecycle events are handed to a NotificationGateway after the write that
produced them has committed. Delivery is best effort: ``dispatch_event``
bounds the call with a timeout and logs every failure. Nothing raised here
reaches the caller of the lifecycle operation.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from app.core import email
from app.core.config import settings

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_STATUS_CHANGED = "application_status_changed"
    ADMISSIONS_PUBLISHED = "admissions_published"
    JOB_APPLICATION_SUBMITTED = "job_application_submitted"
    JOB_APPLICATION_STATUS_CHANGED = "job_application_status_changed"


@dataclass(frozen=True)
class LifecycleEvent:
    """
    A committed lifecycle change.

    ``payload`` carries what the recipient needs to be told, e.g.
    ``recipient_email``, ``student_name``, ``course_name`` / ``job_title``,
    ``status`` and ``notes``.
    """

    type: EventType
    application_id: UUID
    recipient_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationGateway(Protocol):
    async def notify(self, event: LifecycleEvent) -> None: ...


class NotificationDeliveryError(Exception):
    """Raised by a gateway when the underlying channel reports a failed delivery."""


class EmailNotificationGateway:
    """Delivers lifecycle events to students by email (Resend)."""

    async def notify(self, event: LifecycleEvent) -> None:
        payload = event.payload
        to_email = payload.get("recipient_email")
        if not to_email:
            logger.info(
                f"No recipient email for {event.type.value} on application {event.application_id}, skipping"
            )
            return

        student_name = payload.get("student_name") or "there"
        application_id = str(event.application_id)

        if event.type == EventType.APPLICATION_SUBMITTED:
            sent = await email.send_application_received(
                to_email=to_email,
                student_name=student_name,
                course_name=payload.get("course_name") or "your course",
                application_id=application_id,
            )
        elif event.type == EventType.APPLICATION_STATUS_CHANGED:
            sent = await email.send_application_decision(
                to_email=to_email,
                student_name=student_name,
                course_name=payload.get("course_name") or "your course",
                status=payload["status"],
                notes=payload.get("notes"),
                application_id=application_id,
            )
        elif event.type == EventType.ADMISSIONS_PUBLISHED:
            sent = await email.send_admission_published(
                to_email=to_email,
                student_name=student_name,
                course_name=payload.get("course_name") or "your course",
                application_id=application_id,
            )
        elif event.type == EventType.JOB_APPLICATION_SUBMITTED:
            sent = await email.send_job_application_received(
                to_email=to_email,
                student_name=student_name,
                job_title=payload.get("job_title") or "the position",
                application_id=application_id,
            )
        elif event.type == EventType.JOB_APPLICATION_STATUS_CHANGED:
            sent = await email.send_job_application_decision(
                to_email=to_email,
                student_name=student_name,
                job_title=payload.get("job_title") or "the position",
                status=payload["status"],
                notes=payload.get("notes"),
                application_id=application_id,
            )
        else:
            logger.warning(f"Unhandled lifecycle event type: {event.type}")
            return

        if not sent:
            raise NotificationDeliveryError(
                f"Email delivery failed for {event.type.value} on application {event.application_id}"
            )


async def dispatch_event(gateway: NotificationGateway | None, event: LifecycleEvent) -> None:
    """
    Hand one event to the gateway, fire-and-forget.

    Never raises: timeouts and gateway errors are logged and dropped.
    """
    if gateway is None:
        return

    try:
        await asyncio.wait_for(gateway.notify(event), timeout=settings.notification_timeout_seconds)
        logger.debug(f"Dispatched {event.type.value} for application {event.application_id}")
    except TimeoutError:
        logger.error(
            f"Notification {event.type.value} for application {event.application_id} timed out"
        )
    except Exception as e:
        logger.error(
            f"Notification {event.type.value} for application {event.application_id} failed: {e}",
            exc_info=True,
        )


async def dispatch_events(gateway: NotificationGateway | None, events: list[LifecycleEvent]) -> None:
    for event in events:
        await dispatch_event(gateway, event)


_default_gateway = EmailNotificationGateway()


def get_notification_gateway() -> NotificationGateway:
    """FastAPI dependency returning the notification gateway."""
    return _default_gateway
