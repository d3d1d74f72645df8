"""
API tests through FastAPI's TestClient with the full application lifespan.
"""

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from conftest import FailingUnitOfWork
from helpdesk.config import Role
from helpdesk.infrastructure.database import get_session, get_session_context
from helpdesk.main import create_app
from helpdesk.tickets.application import TicketService
from helpdesk.tickets.infrastructure import (
    SQLAlchemyTicketRepository, SQLAlchemyUserRepository, SQLAlchemyEscalationRepository,
)
from helpdesk.tickets.interfaces.dependencies import (
    get_ticket_service, get_event_publisher, get_sla_config,
)

ALICE = {"X-User-Email": "alice@example.com", "X-User-Name": "Alice"}
BOB = {"X-User-Email": "bob@example.com", "X-User-Name": "Bob"}
IT = {"X-User-Email": "it.owner@example.com", "X-User-Name": "IT Owner"}
HR = {"X-User-Email": "hr.owner@example.com", "X-User-Name": "HR Owner"}

NEW_TICKET = {
    "subject": "VPN drops every hour",
    "description": "Disconnects at :00 since Monday.",
    "category": "IT Infrastructure",
    "priority": "Critical",
}


async def grant(email: str, role: str) -> None:
    async with get_session_context() as session:
        await SQLAlchemyUserRepository(session).set_permission(email, role)


@pytest.fixture
def client():
    app = create_app()
    with TestClient(app) as client:
        client.portal.call(grant, "it.owner@example.com", Role.IT_OWNER)
        client.portal.call(grant, "hr.owner@example.com", Role.HR_OWNER)
        # Sign the owners in so auto-assignment can find them
        client.get("/users/me", headers=IT)
        client.get("/users/me", headers=HR)
        yield client


def settle(client: TestClient) -> None:
    """Wait for the audit and notification handlers to finish."""
    client.portal.call(client.app.state.event_bus.join)


class TestIdentity:

    def test_missing_header_is_401(self, client):
        response = client.get("/tickets")
        assert response.status_code == 401
        assert response.json()["error_type"] == "AuthenticationException"

    def test_me(self, client):
        body = client.get("/users/me", headers=IT).json()
        assert body["role"] == "it_owner"
        assert body["allowed_categories"] == ["IT Infrastructure"]


class TestTicketEndpoints:
    """Test ticket routes"""

    def test_create_and_fetch(self, client):
        response = client.post("/tickets", json=NEW_TICKET, headers=ALICE)
        assert response.status_code == 201
        ticket = response.json()
        assert ticket["status"] == "Open"
        assert ticket["assigned_to"] == "it.owner@example.com"
        assert ticket["sla_violated"] is False

        fetched = client.get(f"/tickets/{ticket['id']}", headers=ALICE)
        assert fetched.status_code == 200
        assert fetched.json()["subject"] == NEW_TICKET["subject"]

    def test_invalid_category_is_422(self, client):
        response = client.post("/tickets", json={**NEW_TICKET, "category": "Facilities"}, headers=ALICE)
        assert response.status_code == 422
        assert response.json()["error_type"] == "ValidationException"

    def test_assignee_closes(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()

        response = client.patch(f"/tickets/{ticket['id']}", json={"status": "Closed"}, headers=IT)
        assert response.status_code == 200
        assert response.json()["status"] == "Closed"
        assert response.json()["resolution_time"] is not None

    def test_triager_moves_ticket_out_of_own_category(self, client):
        """Test that a committed update is reported as a success even when the caller loses sight of it"""
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()

        response = client.patch(f"/tickets/{ticket['id']}", json={"category": "HR"}, headers=IT)
        assert response.status_code == 200
        assert response.json()["category"] == "HR"
        assert response.json()["assigned_to"] == "hr.owner@example.com"

        assert client.get(f"/tickets/{ticket['id']}", headers=IT).status_code == 403
        assert client.get(f"/tickets/{ticket['id']}", headers=HR).json()["category"] == "HR"

    def test_store_failure_is_503_and_leaves_no_trace(self, client):
        async def failing_ticket_service(
            session=Depends(get_session),
            publisher=Depends(get_event_publisher),
            sla_config=Depends(get_sla_config),
        ) -> TicketService:
            return TicketService(
                SQLAlchemyTicketRepository(session),
                SQLAlchemyUserRepository(session),
                SQLAlchemyEscalationRepository(session),
                FailingUnitOfWork(),
                publisher,
                sla_config,
            )

        client.app.dependency_overrides[get_ticket_service] = failing_ticket_service
        try:
            response = client.post("/tickets", json=NEW_TICKET, headers=ALICE)
        finally:
            client.app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["error_type"] == "RepositoryException"

        settle(client)
        assert client.get("/tickets", headers=ALICE).json()["total_count"] == 0
        assert client.get("/audit-logs", headers=HR).json() == []
        assert client.get("/notifications", headers=ALICE).json() == []

    def test_employee_update_is_403(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()

        response = client.patch(f"/tickets/{ticket['id']}", json={"status": "Closed"}, headers=BOB)
        assert response.status_code == 403
        assert client.get(f"/tickets/{ticket['id']}", headers=ALICE).json()["status"] == "Open"

    def test_bad_transition_is_422(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()
        client.patch(f"/tickets/{ticket['id']}", json={"status": "Closed"}, headers=IT)

        response = client.patch(f"/tickets/{ticket['id']}", json={"status": "Open"}, headers=IT)
        assert response.status_code == 422
        assert response.json()["error_type"] == "InvalidStatusTransitionException"

    def test_unknown_field_rejected(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()
        response = client.patch(f"/tickets/{ticket['id']}", json={"sla_due_date": None}, headers=IT)
        assert response.status_code == 422

    def test_unknown_ticket_is_404(self, client):
        response = client.get("/tickets/00000000-0000-0000-0000-000000000000", headers=IT)
        assert response.status_code == 404

    def test_list_is_scoped(self, client):
        client.post("/tickets", json=NEW_TICKET, headers=ALICE)
        client.post("/tickets", json=NEW_TICKET, headers=BOB)

        body = client.get("/tickets", headers=ALICE).json()
        assert body["total_count"] == 1
        assert client.get("/tickets", headers=IT).json()["total_count"] == 2

    def test_escalate_then_audit_trail(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()

        response = client.post(
            f"/tickets/{ticket['id']}/escalate",
            json={"reason": "Urgent", "description": "", "timeline": "2 days"},
            headers=ALICE,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ticket"]["status"] == "Escalated"
        assert body["escalation"]["resolved"] is False
        assert body["already_escalated"] is False

        settle(client)
        trail = client.get("/audit-logs", params={"ticket_id": ticket["id"]}, headers=HR).json()
        assert "escalated" in [entry["action"] for entry in trail]

    def test_audit_log_forbidden_for_employees(self, client):
        assert client.get("/audit-logs", headers=ALICE).status_code == 403

    def test_chat_round_trip(self, client):
        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()

        posted = client.post(f"/tickets/{ticket['id']}/messages", json={"message": "Any news?"}, headers=ALICE)
        assert posted.status_code == 201

        messages = client.get(f"/tickets/{ticket['id']}/messages", headers=IT).json()
        assert [m["message"] for m in messages] == ["Any news?"]


class TestReportEndpoints:

    def test_dashboard(self, client):
        client.post("/tickets", json=NEW_TICKET, headers=ALICE)

        body = client.get("/reports/dashboard", headers=IT).json()
        assert body["tickets"]["total_count"] == 1
        assert body["analytics"]["total"] == 1
        assert body["permissions"]["role"] == "it_owner"

    def test_csv_export(self, client):
        client.post("/tickets", json=NEW_TICKET, headers=ALICE)

        response = client.get("/reports/export", params={"format": "csv"}, headers=IT)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.splitlines()[0] == "id,subject,status,priority,category,employeeName,assignedTo"

    def test_extended_export_forbidden(self, client):
        response = client.get("/reports/export", params={"extended": "true"}, headers=IT)
        assert response.status_code == 403


class TestHealth:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"] == "connected"
        assert body["checks"]["event_bus"] == "running"

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"


TEMPLATE = {
    "name": "Expense claim",
    "category": "Accounts",
    "subject": "Expense claim not reimbursed",
    "description": "Claim reference, amount and submission date:",
    "priority": "Medium",
}


class TestTemplateEndpoints:
    """Test template routes"""

    def test_manager_creates_everyone_reads(self, client):
        response = client.post("/templates", json=TEMPLATE, headers=HR)
        assert response.status_code == 201
        template = response.json()
        assert template["created_by"] == "hr.owner@example.com"

        assert [t["id"] for t in client.get("/templates/category/Accounts", headers=ALICE).json()] == [template["id"]]
        assert client.get("/templates/category/HR", headers=ALICE).json() == []
        assert client.get(f"/templates/{template['id']}", headers=BOB).json()["name"] == "Expense claim"

    def test_employee_cannot_create(self, client):
        assert client.post("/templates", json=TEMPLATE, headers=ALICE).status_code == 403

    def test_edit_and_delete(self, client):
        template = client.post("/templates", json=TEMPLATE, headers=HR).json()

        edited = client.patch(f"/templates/{template['id']}", json={"priority": "High"}, headers=HR)
        assert edited.json()["priority"] == "High"

        assert client.delete(f"/templates/{template['id']}", headers=HR).status_code == 204
        assert client.get(f"/templates/{template['id']}", headers=HR).status_code == 404


class TestNotificationEndpoints:
    """Test the in-app inbox"""

    def test_inbox_and_mark_read(self, client):
        client.post("/tickets", json=NEW_TICKET, headers=ALICE)
        settle(client)

        inbox = client.get("/notifications", headers=ALICE).json()
        assert [n["title"] for n in inbox] == ["Ticket Created"]
        assert inbox[0]["read"] is False

        marked = client.post(f"/notifications/{inbox[0]['id']}/read", headers=ALICE)
        assert marked.status_code == 200
        assert marked.json()["read"] is True
        assert client.get("/notifications", headers=ALICE).json()[0]["read"] is True

    def test_someone_elses_notification_is_403(self, client):
        client.post("/tickets", json=NEW_TICKET, headers=ALICE)
        settle(client)

        assigned = client.get("/notifications", headers=IT).json()
        assert [n["title"] for n in assigned] == ["New Ticket Assigned"]
        assert client.post(f"/notifications/{assigned[0]['id']}/read", headers=ALICE).status_code == 403


class TestProfileEndpoint:

    def test_profile_feeds_new_tickets(self, client):
        response = client.patch(
            "/users/alice@example.com/profile",
            json={"employee_code": "E-1042", "sub_department": "Payroll"},
            headers=ALICE,
        )
        assert response.status_code == 200
        assert response.json()["employee_code"] == "E-1042"

        ticket = client.post("/tickets", json=NEW_TICKET, headers=ALICE).json()
        assert ticket["employee_code"] == "E-1042"
        assert ticket["sub_department"] == "Payroll"

    def test_other_users_profile_is_403(self, client):
        client.get("/users/me", headers=ALICE)
        response = client.patch("/users/alice@example.com/profile", json={"employee_code": "X"}, headers=BOB)
        assert response.status_code == 403
