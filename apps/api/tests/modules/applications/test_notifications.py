"""
Unit tests for lifecycle notifications.

These tests cover:
- Fire-and-forget dispatch (errors and timeouts never propagate)
- Email gateway routing per event type
- Delivery failures reported by the email channel
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from app.modules.applications.notifications import (
    EmailNotificationGateway,
    EventType,
    LifecycleEvent,
    NotificationDeliveryError,
    dispatch_event,
    dispatch_events,
)

NOTIFICATIONS = "app.modules.applications.notifications"


def _event(event_type=EventType.APPLICATION_SUBMITTED, **payload):
    return LifecycleEvent(
        type=event_type,
        application_id=uuid4(),
        recipient_id=uuid4(),
        payload={
            "recipient_email": "ama@student.test",
            "student_name": "Ama Mensah",
            "course_name": "BSc Computer Science",
            **payload,
        },
    )


class TestDispatchEvent:
    @pytest.mark.asyncio
    async def test_delivers_to_gateway(self, mock_gateway):
        event = _event()

        await dispatch_event(mock_gateway, event)

        mock_gateway.notify.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_no_gateway_is_a_no_op(self):
        await dispatch_event(None, _event())

    @pytest.mark.asyncio
    async def test_gateway_error_is_swallowed(self, mock_gateway):
        mock_gateway.notify = AsyncMock(side_effect=NotificationDeliveryError("bounced"))

        await dispatch_event(mock_gateway, _event())

        mock_gateway.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_slow_gateway_times_out(self, mock_gateway):
        async def hang(event):
            await asyncio.sleep(1)

        mock_gateway.notify = AsyncMock(side_effect=hang)

        with patch(f"{NOTIFICATIONS}.settings") as mock_settings:
            mock_settings.notification_timeout_seconds = 0.01
            await dispatch_event(mock_gateway, _event())

    @pytest.mark.asyncio
    async def test_dispatch_events_continues_after_failure(self, mock_gateway):
        mock_gateway.notify = AsyncMock(side_effect=[RuntimeError("down"), None, None])
        events = [_event(), _event(), _event()]

        await dispatch_events(mock_gateway, events)

        assert mock_gateway.notify.await_count == 3


class TestEmailNotificationGateway:
    """Tests for EmailNotificationGateway routing."""

    @pytest.fixture
    def mock_email(self):
        with patch(f"{NOTIFICATIONS}.email") as mock_email:
            for sender in (
                "send_application_received",
                "send_application_decision",
                "send_admission_published",
                "send_job_application_received",
                "send_job_application_decision",
            ):
                setattr(mock_email, sender, AsyncMock(return_value=True))
            yield mock_email

    @pytest.mark.asyncio
    async def test_submission_email(self, mock_email):
        event = _event()

        await EmailNotificationGateway().notify(event)

        mock_email.send_application_received.assert_awaited_once_with(
            to_email="ama@student.test",
            student_name="Ama Mensah",
            course_name="BSc Computer Science",
            application_id=str(event.application_id),
        )

    @pytest.mark.asyncio
    async def test_decision_email(self, mock_email):
        event = _event(
            EventType.APPLICATION_STATUS_CHANGED, status="accepted", notes="Welcome aboard"
        )

        await EmailNotificationGateway().notify(event)

        kwargs = mock_email.send_application_decision.call_args.kwargs
        assert kwargs["status"] == "accepted"
        assert kwargs["notes"] == "Welcome aboard"

    @pytest.mark.asyncio
    async def test_admission_email(self, mock_email):
        await EmailNotificationGateway().notify(_event(EventType.ADMISSIONS_PUBLISHED))

        mock_email.send_admission_published.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_job_decision_email_falls_back_on_missing_title(self, mock_email):
        event = LifecycleEvent(
            type=EventType.JOB_APPLICATION_STATUS_CHANGED,
            application_id=uuid4(),
            recipient_id=uuid4(),
            payload={
                "recipient_email": "ama@student.test",
                "job_title": None,
                "status": "interview",
            },
        )

        await EmailNotificationGateway().notify(event)

        kwargs = mock_email.send_job_application_decision.call_args.kwargs
        assert kwargs["job_title"] == "the position"
        assert kwargs["student_name"] == "there"

    @pytest.mark.asyncio
    async def test_missing_recipient_is_skipped(self, mock_email):
        await EmailNotificationGateway().notify(_event(recipient_email=None))

        mock_email.send_application_received.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_send_raises(self, mock_email):
        mock_email.send_application_received = AsyncMock(return_value=False)

        with pytest.raises(NotificationDeliveryError):
            await EmailNotificationGateway().notify(_event())


class TestEmailSenders:
    @pytest.mark.asyncio
    async def test_send_email_without_api_key_logs_instead(self):
        from app.core import email

        with patch.object(email.resend, "api_key", ""):
            sent = await email.send_email("ama@student.test", "Subject", "<p>Hi</p>")

        assert sent is True

    @pytest.mark.asyncio
    async def test_send_email_reports_provider_failure(self):
        from app.core import email

        with (
            patch.object(email.resend, "api_key", "re_test"),
            patch.object(email.resend.Emails, "send", MagicMock(side_effect=RuntimeError("403"))),
        ):
            sent = await email.send_email("ama@student.test", "Subject", "<p>Hi</p>")

        assert sent is False

    @pytest.mark.asyncio
    async def test_decision_email_escapes_names(self):
        from app.core import email

        with patch.object(email, "send_email", AsyncMock(return_value=True)) as mock_send:
            await email.send_application_decision(
                to_email="ama@student.test",
                student_name="<script>",
                course_name="BSc & Co",
                status="accepted",
                notes=None,
                application_id=str(uuid4()),
            )

        html = mock_send.call_args.kwargs["html_content"]
        assert "<script>" not in html
        assert "BSc &amp; Co" in html
        assert "has been accepted" in html
