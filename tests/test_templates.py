"""
Tests for ticket templates.
"""

import pytest

from helpdesk.core import AuthorizationException, ResourceNotFoundException, ValidationException
from helpdesk.tickets.application import TemplateCreateRequest, TemplateUpdateRequest


def template(**overrides) -> TemplateCreateRequest:
    data = {
        "name": "New starter laptop",
        "category": "IT Infrastructure",
        "subject": "Laptop for a new starter",
        "description": "Start date, team and required software:",
        "priority": "Medium",
    }
    data.update(overrides)
    return TemplateCreateRequest(**data)


class TestCreateTemplate:
    """Test who may create templates and what is checked"""

    @pytest.mark.parametrize("who", ["hr", "admin", "owner"])
    async def test_role_managers_create(self, template_service, people, clock, who):
        created = await template_service.create_template(template(), people[who])

        assert created.created_by == people[who].email
        assert created.created_at == clock.now
        assert (await template_service.get_template(created.id)).name == "New starter laptop"

    @pytest.mark.parametrize("who", ["alice", "it", "accounts"])
    async def test_others_refused(self, template_service, people, who):
        with pytest.raises(AuthorizationException):
            await template_service.create_template(template(), people[who])

    async def test_unknown_category(self, template_service, people):
        with pytest.raises(ValidationException):
            await template_service.create_template(template(category="Facilities"), people["hr"])

    async def test_blank_name(self, template_service, people):
        with pytest.raises(ValidationException):
            await template_service.create_template(template(name="  "), people["hr"])


class TestListTemplates:

    async def test_newest_first_and_paged(self, template_service, people, clock):
        for name in ("first", "second", "third"):
            await template_service.create_template(template(name=name), people["hr"])
            clock.advance(minutes=1)

        assert [t.name for t in await template_service.list_templates()] == ["third", "second", "first"]
        assert [t.name for t in await template_service.list_templates(page=2, page_size=2)] == ["first"]

    async def test_by_category(self, template_service, people):
        await template_service.create_template(template(), people["hr"])
        await template_service.create_template(template(name="Leave request", category="HR"), people["hr"])

        by_category = await template_service.templates_by_category("HR")
        assert [t.name for t in by_category] == ["Leave request"]

        with pytest.raises(ValidationException):
            await template_service.templates_by_category("Facilities")


class TestEditTemplate:

    async def test_partial_update(self, template_service, people):
        created = await template_service.create_template(template(), people["hr"])

        updated = await template_service.update_template(
            created.id, TemplateUpdateRequest(priority="High"), people["owner"]
        )
        assert updated.priority == "High"
        assert updated.subject == created.subject
        assert updated.created_by == "hr.owner@example.com"

    async def test_delete(self, template_service, people):
        created = await template_service.create_template(template(), people["hr"])
        await template_service.delete_template(created.id, people["admin"])

        with pytest.raises(ResourceNotFoundException):
            await template_service.get_template(created.id)
        with pytest.raises(ResourceNotFoundException):
            await template_service.delete_template(created.id, people["admin"])

    async def test_employee_cannot_edit(self, template_service, people):
        created = await template_service.create_template(template(), people["hr"])
        with pytest.raises(AuthorizationException):
            await template_service.update_template(created.id, TemplateUpdateRequest(name="x"), people["alice"])
