"""
Workflow Orchestrator.

Sequences the onboarding steps:

    user-registration -> organization-setup -> chatbot-integration -> success

advance(from_step) is the only way forward and there is no way back. It is a
no-op unless from_step is the current step and that step's handler reports
complete; otherwise it records the handler's payload into the aggregator and
moves to the next step. Reaching `success` is the single completion signal
for the host.

Handlers of steps already left are kept alive so background work they
started (website scraping) can finish; they are only closed at session end.
"""

import logging
from collections.abc import Callable
from typing import Any

from .config import OnboardingSettings, get_settings
from .integration import IntegrationChecker, SimulatedIntegrationChecker
from .lookup import HttpMetadataFetcher, MetadataFetcher
from .lookup.debounce import Spawner
from .scraping import PageScraper, SimulatedPageScraper
from .state import (
    STEP_TITLES,
    TERMINAL_STEP,
    WorkflowState,
    WorkflowStep,
    get_next_step,
    step_progress,
)
from .steps import (
    ChatbotIntegrationStep,
    OrganizationSetupStep,
    StepHandler,
    UserRegistrationStep,
)
from .timers import AsyncioScheduler, Scheduler
from .verification import RandomCodeIssuer, VerificationIssuer

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Top-level state machine for one onboarding session."""

    def __init__(
        self,
        user_id: str = "",
        scheduler: Scheduler | None = None,
        settings: OnboardingSettings | None = None,
        fetcher: MetadataFetcher | None = None,
        issuer: VerificationIssuer | None = None,
        scraper: PageScraper | None = None,
        checker: IntegrationChecker | None = None,
        organization_defaults: dict[str, str] | None = None,
        spawn: Spawner | None = None,
        on_step_change: Callable[[WorkflowStep], None] | None = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncioScheduler()
        self.fetcher = fetcher or HttpMetadataFetcher(timeout=self.settings.lookup_timeout_seconds)
        self.issuer = issuer or RandomCodeIssuer(length=self.settings.verification_code_length)
        self.scraper = scraper or SimulatedPageScraper(navigation=self.settings.scrape_pages)
        self.checker = checker or SimulatedIntegrationChecker()
        self.organization_defaults = organization_defaults or {}
        self.spawn = spawn
        self.on_step_change = on_step_change

        self.state = WorkflowState(user_id=user_id)
        self._handlers: dict[WorkflowStep, StepHandler] = {}
        self._closed = False
        self._enter(self.state.current_step)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def current_step(self) -> WorkflowStep:
        return self.state.current_step

    @property
    def is_finished(self) -> bool:
        return self.state.is_finished

    @property
    def current_handler(self) -> StepHandler | None:
        return self._handlers.get(self.state.current_step)

    def handler(self, step: WorkflowStep) -> StepHandler | None:
        """Handler for a step that has been entered (None otherwise)."""
        return self._handlers.get(step)

    @property
    def registration(self) -> UserRegistrationStep:
        return self._require(WorkflowStep.USER_REGISTRATION)

    @property
    def organization(self) -> OrganizationSetupStep:
        return self._require(WorkflowStep.ORGANIZATION_SETUP)

    @property
    def integration(self) -> ChatbotIntegrationStep:
        return self._require(WorkflowStep.CHATBOT_INTEGRATION)

    def progress(self) -> list[dict]:
        return step_progress(self.state)

    def success_message(self) -> str | None:
        """Closing message built from the combined record, once finished."""
        if not self.is_finished:
            return None
        user = self.state.step_data.get(WorkflowStep.USER_REGISTRATION, {})
        organization = self.state.step_data.get(WorkflowStep.ORGANIZATION_SETUP, {})
        return (
            f"Congratulations, {user.get('name', '')}! Your account for "
            f"{organization.get('company_name', '')} has been successfully created "
            "and your chatbot has been integrated."
        )

    def snapshot(self) -> dict[str, Any]:
        """Everything the presentation layer needs to render the session."""
        handler = self.current_handler
        return {
            "state": self.state.to_dict(),
            "progress": self.progress(),
            "current_step": self.current_step.value,
            "current_title": STEP_TITLES[self.current_step],
            "step": handler.snapshot() if handler else None,
            "background": self.background_work(),
            "finished": self.is_finished,
            "success_message": self.success_message(),
        }

    def background_work(self) -> list[dict]:
        """Scrape jobs still running for steps that were already left."""
        work = []
        for step, handler in self._handlers.items():
            if step == self.current_step or not isinstance(handler, OrganizationSetupStep):
                continue
            job = handler.tracker.job
            if job is not None and not job.is_complete:
                work.append({
                    "step": step.value,
                    "completed": job.terminal_count,
                    "total": len(job.items),
                })
        return work

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def advance(self, from_step: WorkflowStep) -> bool:
        """
        Leave from_step and enter the next one.

        Returns False, changing nothing, when from_step is not the current
        step, the session is finished or closed, or the step is incomplete.
        """
        if self._closed:
            logger.debug("Advance ignored, session closed")
            return False
        if from_step != self.state.current_step:
            logger.debug(
                f"Advance from {from_step.value} ignored, current step is "
                f"{self.state.current_step.value}"
            )
            return False
        if from_step == TERMINAL_STEP:
            return False

        handler = self._handlers[from_step]
        if not handler.is_complete():
            logger.debug(f"Advance from {from_step.value} ignored, step incomplete")
            return False

        self.state.step_data.record(from_step, handler.payload())
        handler.leave()

        next_step = get_next_step(from_step)
        self.state.current_step = next_step
        self.state.touch()
        logger.info(f"Onboarding {self.state.user_id or '<anonymous>'}: {from_step.value} -> {next_step.value}")
        self._enter(next_step)

        if self.on_step_change:
            self.on_step_change(next_step)
        return True

    def close(self) -> None:
        """End the session: cancel every timer any step still owns."""
        if self._closed:
            return
        self._closed = True
        for handler in self._handlers.values():
            handler.close()
        logger.info(f"Onboarding session {self.state.user_id or '<anonymous>'} closed")

    async def wait_idle(self) -> None:
        """Wait for in-flight metadata lookups to settle."""
        handler = self._handlers.get(WorkflowStep.ORGANIZATION_SETUP)
        if isinstance(handler, OrganizationSetupStep):
            await handler.lookup.wait_idle()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _enter(self, step: WorkflowStep) -> None:
        handler = self._build_handler(step)
        if handler is None:
            return
        handler.on_payload_changed = self._rerecord
        self._handlers[step] = handler

    def _build_handler(self, step: WorkflowStep) -> StepHandler | None:
        settings = self.settings
        if step == WorkflowStep.USER_REGISTRATION:
            return UserRegistrationStep(
                self.scheduler,
                self.issuer,
                window_seconds=settings.verification_window_seconds,
            )
        if step == WorkflowStep.ORGANIZATION_SETUP:
            return OrganizationSetupStep(
                self.scheduler,
                self.fetcher,
                self.scraper,
                pages=settings.scrape_pages,
                item_delay_seconds=settings.scrape_item_delay_seconds,
                debounce_seconds=settings.lookup_debounce_seconds,
                initial_data=self.organization_defaults,
                spawn=self.spawn,
            )
        if step == WorkflowStep.CHATBOT_INTEGRATION:
            organization = self.state.step_data.get(WorkflowStep.ORGANIZATION_SETUP, {})
            return ChatbotIntegrationStep(
                self.scheduler,
                self.checker,
                website_url=organization.get("website_url", ""),
                script_url=settings.chatbot_script_url,
                check_delay_seconds=settings.integration_check_seconds,
            )
        return None

    def _rerecord(self, handler: StepHandler) -> None:
        """A left step finished background work; refresh its recorded payload."""
        if self._closed or not handler.left:
            return
        self.state.step_data.record(handler.step, handler.payload())
        self.state.touch()
        logger.info(f"Updated recorded data for {handler.step.value} after background work")

    def _require(self, step: WorkflowStep) -> Any:
        handler = self._handlers.get(step)
        if handler is None:
            raise LookupError(f"Step {step.value} has not been reached")
        return handler
