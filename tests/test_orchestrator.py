"""Tests for the workflow orchestrator."""

import asyncio

import pytest

from onboarding.state import WorkflowStep


def _register(orchestrator, issuer, data):
    step = orchestrator.registration
    for name, value in data.items():
        step.set_field(name, value)
    step.send_code()
    step.submit_code(issuer.last_code)


def _setup_organization(orchestrator, data):
    step = orchestrator.organization
    for name, value in data.items():
        step.set_field(name, value)


def _integrate(orchestrator, clock):
    orchestrator.integration.test_integration()
    clock.advance(2)


class TestAdvance:

    def test_starts_at_registration(self, make_orchestrator):
        orchestrator = make_orchestrator()
        assert orchestrator.current_step == WorkflowStep.USER_REGISTRATION
        assert orchestrator.handler(WorkflowStep.ORGANIZATION_SETUP) is None
        with pytest.raises(LookupError):
            orchestrator.organization

    def test_incomplete_step_does_not_advance(self, make_orchestrator, registration_data):
        orchestrator = make_orchestrator()
        step = orchestrator.registration
        for name, value in registration_data.items():
            step.set_field(name, value)
        step.send_code()

        assert not orchestrator.advance(WorkflowStep.USER_REGISTRATION)
        assert orchestrator.current_step == WorkflowStep.USER_REGISTRATION
        assert len(orchestrator.state.step_data) == 0

    def test_advance_from_wrong_step_is_noop(self, make_orchestrator, issuer, registration_data):
        orchestrator = make_orchestrator()
        _register(orchestrator, issuer, registration_data)

        assert not orchestrator.advance(WorkflowStep.ORGANIZATION_SETUP)
        assert not orchestrator.advance(WorkflowStep.SUCCESS)
        assert orchestrator.current_step == WorkflowStep.USER_REGISTRATION

    def test_advance_records_payload(self, make_orchestrator, issuer, registration_data):
        changes = []
        orchestrator = make_orchestrator(on_step_change=changes.append)
        _register(orchestrator, issuer, registration_data)

        assert orchestrator.advance(WorkflowStep.USER_REGISTRATION)
        assert orchestrator.current_step == WorkflowStep.ORGANIZATION_SETUP
        assert changes == [WorkflowStep.ORGANIZATION_SETUP]
        assert orchestrator.state.step_data.get(WorkflowStep.USER_REGISTRATION) == {
            "name": "Ada Lovelace",
            "email": "ada@example.com",
        }

    def test_no_way_back(self, make_orchestrator, issuer, registration_data):
        orchestrator = make_orchestrator()
        _register(orchestrator, issuer, registration_data)
        orchestrator.advance(WorkflowStep.USER_REGISTRATION)

        assert not orchestrator.advance(WorkflowStep.USER_REGISTRATION)
        assert orchestrator.current_step == WorkflowStep.ORGANIZATION_SETUP

    def test_closed_session_does_not_advance(self, make_orchestrator, issuer, registration_data):
        orchestrator = make_orchestrator()
        _register(orchestrator, issuer, registration_data)
        orchestrator.close()
        assert not orchestrator.advance(WorkflowStep.USER_REGISTRATION)


class TestWalkthrough:

    def test_full_flow(self, make_orchestrator, clock, issuer, registration_data, organization_data):
        async def scenario():
            orchestrator = make_orchestrator()
            _register(orchestrator, issuer, registration_data)
            assert orchestrator.advance(WorkflowStep.USER_REGISTRATION)

            _setup_organization(orchestrator, organization_data)
            clock.advance(0.5)
            await orchestrator.wait_idle()
            assert orchestrator.organization.start_training()
            clock.advance(6)
            assert orchestrator.advance(WorkflowStep.ORGANIZATION_SETUP)

            assert orchestrator.integration.website_url == "https://acme.example"
            assert not orchestrator.advance(WorkflowStep.CHATBOT_INTEGRATION)
            _integrate(orchestrator, clock)
            assert orchestrator.advance(WorkflowStep.CHATBOT_INTEGRATION)
            return orchestrator

        orchestrator = asyncio.run(scenario())
        assert orchestrator.is_finished
        assert orchestrator.current_handler is None
        assert not orchestrator.advance(WorkflowStep.SUCCESS)

        combined = orchestrator.state.step_data.combined()
        assert list(combined) == ["user-registration", "organization-setup", "chatbot-integration"]
        assert combined["organization-setup"]["company_name"] == "Acme Corp"
        assert len(combined["organization-setup"]["web_pages"]) == 3
        assert combined["chatbot-integration"]["integrated"] is True
        assert orchestrator.success_message() == (
            "Congratulations, Ada Lovelace! Your account for Acme Corp has been "
            "successfully created and your chatbot has been integrated."
        )
        assert [p["status"] for p in orchestrator.progress()] == ["completed"] * 3 + ["in_progress"]

    def test_success_message_only_when_finished(self, make_orchestrator):
        assert make_orchestrator().success_message() is None

    def test_scraping_continues_after_leaving(
        self, make_orchestrator, clock, issuer, registration_data, organization_data
    ):
        async def scenario():
            orchestrator = make_orchestrator()
            _register(orchestrator, issuer, registration_data)
            orchestrator.advance(WorkflowStep.USER_REGISTRATION)
            _setup_organization(orchestrator, organization_data)
            clock.advance(0.5)
            await orchestrator.wait_idle()

            orchestrator.organization.start_training()
            clock.advance(2)
            assert orchestrator.advance(WorkflowStep.ORGANIZATION_SETUP)
            return orchestrator

        orchestrator = asyncio.run(scenario())
        recorded = orchestrator.state.step_data.get(WorkflowStep.ORGANIZATION_SETUP)
        assert [page["status"] for page in recorded["web_pages"]] == ["completed", "pending", "pending"]
        assert orchestrator.background_work() == [
            {"step": "organization-setup", "completed": 1, "total": 3}
        ]

        clock.advance(4)
        recorded = orchestrator.state.step_data.get(WorkflowStep.ORGANIZATION_SETUP)
        assert [page["status"] for page in recorded["web_pages"]] == ["completed"] * 3
        assert orchestrator.background_work() == []
        assert orchestrator.organization.select_page("Contact").status.value == "completed"

    def test_close_cancels_everything(
        self, make_orchestrator, clock, issuer, registration_data, organization_data
    ):
        async def scenario():
            orchestrator = make_orchestrator()
            _register(orchestrator, issuer, registration_data)
            orchestrator.advance(WorkflowStep.USER_REGISTRATION)
            _setup_organization(orchestrator, organization_data)
            clock.advance(0.5)
            await orchestrator.wait_idle()
            orchestrator.organization.start_training()
            orchestrator.advance(WorkflowStep.ORGANIZATION_SETUP)
            orchestrator.integration.test_integration()
            return orchestrator

        orchestrator = asyncio.run(scenario())
        orchestrator.close()
        assert clock.pending == 0
        clock.advance(60)
        assert not orchestrator.organization.all_pages_scraped
        assert not orchestrator.integration.is_integrated

    def test_snapshot(self, make_orchestrator):
        snapshot = make_orchestrator().snapshot()
        assert snapshot["current_step"] == "user-registration"
        assert snapshot["current_title"] == "User Registration"
        assert snapshot["step"]["step"] == "user-registration"
        assert snapshot["finished"] is False
        assert snapshot["success_message"] is None
