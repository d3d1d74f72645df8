"""
Tests for the notification webhook client and the notification event handler.
"""

import json

import httpx
import pytest

from conftest import draft
from helpdesk.infrastructure.database import get_session_context
from helpdesk.tickets.application import (
    NotificationPayload, TicketUpdateRequest, EscalationRequest, TicketEventType,
)
from helpdesk.tickets.infrastructure import CircuitBreaker, WebhookNotifier, NotificationEventHandler


class RecordingErrorChannel:
    """Stands in for ErrorChannel and keeps what was recorded."""

    def __init__(self):
        self.records = []

    async def record(self, context, error, **extra):
        self.records.append((context, str(error)))


def payload(**overrides) -> NotificationPayload:
    data = {
        "ticket_id": "0b7c6a56-5b1f-4a43-9f0e-2f6f5d1b6a10",
        "subject": "Laptop will not boot",
        "status": "Open",
        "category": "IT Infrastructure",
        "employee_email": "alice@example.com",
        "employee_name": "Alice",
    }
    data.update(overrides)
    return NotificationPayload(**data)


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def errors():
    return RecordingErrorChannel()


def make_notifier(requests_seen, errors, status_code=200, **kwargs) -> WebhookNotifier:
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return WebhookNotifier(
        webhook_url="https://hooks.example.com/helpdesk",
        token="s3cret",
        timeout_seconds=5,
        error_channel=errors,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestWebhookNotifier:
    """Test webhook dispatch"""

    async def test_posts_json_with_bearer_token(self, requests_seen, errors):
        notifier = make_notifier(requests_seen, errors)

        assert await notifier.dispatch(payload()) is True
        await notifier.close()

        request = requests_seen[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer s3cret"
        body = json.loads(request.content)
        assert body["ticket_id"] == "0b7c6a56-5b1f-4a43-9f0e-2f6f5d1b6a10"
        assert body["status"] == "Open"
        assert errors.records == []

    async def test_others_category_sent_as_hr(self, requests_seen, errors):
        notifier = make_notifier(requests_seen, errors)
        await notifier.dispatch(payload(category="Others"))
        await notifier.close()

        assert json.loads(requests_seen[0].content)["category"] == "HR"

    async def test_http_error_recorded_not_raised(self, requests_seen, errors):
        """Test that a 500 from the webhook returns False and lands on the error channel"""
        notifier = make_notifier(requests_seen, errors, status_code=500)

        assert await notifier.dispatch(payload()) is False
        await notifier.close()

        assert len(errors.records) == 1
        assert "sendNotification" in errors.records[0][0]

    async def test_connection_error_recorded(self, errors):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = WebhookNotifier(
            webhook_url="https://hooks.example.com/helpdesk",
            token="s3cret",
            error_channel=errors,
            transport=httpx.MockTransport(handler),
        )
        assert await notifier.dispatch(payload()) is False
        await notifier.close()
        assert "connection refused" in errors.records[0][1]

    async def test_missing_required_fields(self, requests_seen, errors):
        notifier = make_notifier(requests_seen, errors)

        assert await notifier.dispatch(payload(subject="  ")) is False
        assert requests_seen == []
        assert "subject" in errors.records[0][1]

    async def test_no_url_skips_send(self, requests_seen, errors):
        notifier = WebhookNotifier(webhook_url="", error_channel=errors)
        assert await notifier.dispatch(payload()) is False
        assert errors.records == []

    async def test_circuit_opens_after_failures(self, requests_seen, errors):
        notifier = make_notifier(
            requests_seen, errors, status_code=503,
            circuit_breaker=CircuitBreaker(failure_threshold=2, recovery_timeout=60),
        )
        for _ in range(3):
            await notifier.dispatch(payload())
        await notifier.close()

        assert len(requests_seen) == 2


class TestCircuitBreaker:

    def test_recovers_after_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()
        assert breaker.allow_request()
        assert breaker.state == "half_open"

    def test_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        assert not breaker.allow_request()
        breaker.record_success()
        assert breaker.allow_request()


class TestNotificationEventHandler:
    """Test which events notify and what they carry"""

    @pytest.fixture
    def handler(self, requests_seen, errors):
        return NotificationEventHandler(make_notifier(requests_seen, errors), get_session_context, errors)

    async def test_created_notifies(self, handler, ticket_service, people, publisher):
        await ticket_service.create_ticket(draft(), people["alice"])
        built = await handler.build_payload(publisher.events[0])

        assert built.status == "Open"
        assert built.employee_email == "alice@example.com"

    async def test_update_without_status_change_is_silent(self, handler, ticket_service, people, publisher):
        ticket = await ticket_service.create_ticket(draft(), people["alice"])
        await ticket_service.update_ticket(ticket.id, TicketUpdateRequest(priority="Low"), people["it"])

        assert await handler.build_payload(publisher.events[-1]) is None

    async def test_status_change_notifies(self, handler, ticket_service, people, publisher, requests_seen):
        ticket = await ticket_service.create_ticket(draft(), people["alice"])
        await ticket_service.update_ticket(ticket.id, TicketUpdateRequest(status="Closed"), people["it"])

        await handler(publisher.events[-1])
        assert json.loads(requests_seen[-1].content)["status"] == "Closed"

    async def test_escalation_carries_hr_emails(
        self, handler, ticket_service, escalation_service, people, publisher
    ):
        ticket = await ticket_service.create_ticket(draft(), people["alice"])
        await escalation_service.escalate(
            ticket.id, EscalationRequest(reason="Urgent", timeline="2 days"), people["alice"]
        )

        built = await handler.build_payload(publisher.of_type(TicketEventType.ESCALATED)[0])
        assert built.status == "Escalated"
        assert built.hr_emails == ["hr.owner@example.com"]
        assert built.escalation_reason == "Urgent"

    async def test_message_notification(self, handler, ticket_service, chat_service, people, publisher):
        ticket = await ticket_service.create_ticket(draft(), people["alice"])
        await chat_service.post_message(ticket.id, "Any update?", people["it"])

        built = await handler.build_payload(publisher.of_type(TicketEventType.MESSAGE)[0])
        assert built.status == "Notification"
        assert built.message_content == "Any update?"
        assert built.sender_role == "it_owner"
