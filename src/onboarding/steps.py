"""
Step handlers.

Each handler owns one step's slice of the session: its fields, its
completion predicate and the async helpers it started (verification session,
metadata lookup, scrape job, integration check). Handlers never read or
write another step's data; the orchestrator hands them what they need from
the aggregated record when it creates them.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from .forms import (
    collect_field_errors,
    OrganizationForm,
    UserRegistrationForm,
    validate_organization,
    validate_user_registration,
    visible_errors,
)
from .integration import IntegrationChecker, embed_snippet
from .jobs import BackgroundJob, JobItem, JobTracker, build_page_specs
from .lookup import (
    DebouncedLookup,
    LookupErrorKind,
    LookupResult,
    MetadataFetcher,
    MetadataResponse,
    company_name_from_title,
)
from .lookup.debounce import Spawner
from .scraping import PageScraper
from .state import WorkflowStep
from .timers import Scheduler, TimerHandle
from .verification import (
    VerificationIssuer,
    VerificationOutcome,
    VerificationSession,
)

logger = logging.getLogger(__name__)


@dataclass
class TrackedField:
    """
    A form value that remembers whether the user has edited it.

    External data (metadata lookup) may only fill a field that is still
    empty and has never been edited. Values seeded from initial data count
    as filled.
    """

    default: str = ""
    value: str = ""
    user_edited: bool = False

    @classmethod
    def with_default(cls, default: str | None) -> "TrackedField":
        default = default or ""
        return cls(default=default, value=default)

    def edit(self, value: str) -> None:
        self.value = value
        self.user_edited = True

    def autofill(self, value: str | None) -> bool:
        if not value or self.user_edited or self.value.strip():
            return False
        self.value = value
        return True


class StepHandler(ABC):
    """Base class for the data-collecting steps."""

    step: WorkflowStep

    def __init__(self) -> None:
        self.left = False
        self.on_payload_changed: Callable[["StepHandler"], None] | None = None

    @abstractmethod
    def is_complete(self) -> bool:
        """Whether the step may be left right now."""
        ...

    @abstractmethod
    def payload(self) -> dict[str, Any]:
        """Validated output recorded when the step is left."""
        ...

    @abstractmethod
    def snapshot(self) -> dict[str, Any]:
        """Presentation view of the step."""
        ...

    def leave(self) -> None:
        """Called once the orchestrator has moved past this step."""
        self.left = True

    def close(self) -> None:
        """Called at session end; cancel anything still scheduled."""


# =============================================================================
# Step 1: User Registration
# =============================================================================

class UserRegistrationStep(StepHandler):
    """Account fields plus email verification."""

    step = WorkflowStep.USER_REGISTRATION
    FIELDS = tuple(UserRegistrationForm.model_fields)

    def __init__(
        self,
        scheduler: Scheduler,
        issuer: VerificationIssuer,
        window_seconds: int = 60,
    ):
        super().__init__()
        self.scheduler = scheduler
        self.issuer = issuer
        self.window_seconds = window_seconds

        self.fields: dict[str, str] = {name: "" for name in self.FIELDS}
        self.touched: set[str] = set()
        self.verification: VerificationSession | None = None
        self.verified = False

    @property
    def code_sent(self) -> bool:
        return self.verification is not None or self.verified

    @property
    def all_errors(self) -> dict[str, str]:
        return collect_field_errors(UserRegistrationForm, self.fields)

    @property
    def errors(self) -> dict[str, str]:
        return visible_errors(self.all_errors, self.touched)

    @property
    def can_send_code(self) -> bool:
        is_valid, _ = validate_user_registration(self.fields)
        return is_valid and not self.code_sent

    def set_field(self, name: str, value: str, touch: bool = True) -> bool:
        """Update a field. Fields are frozen once a code has been sent."""
        if name not in self.fields:
            raise ValueError(f"Unknown registration field: {name}")
        if self.code_sent:
            logger.debug(f"Ignoring edit to {name}, verification already sent")
            return False
        self.fields[name] = value
        if touch:
            self.touched.add(name)
        return True

    def touch(self, name: str) -> None:
        if name in self.fields:
            self.touched.add(name)

    def send_code(self) -> bool:
        if self.code_sent:
            return False
        if not self.can_send_code:
            self.touched.update(self.fields)
            return False
        self.verification = VerificationSession(
            self.scheduler, self.issuer, window_seconds=self.window_seconds
        )
        return self.verification.send(self.fields["email"].strip())

    def resend_code(self) -> bool:
        if self.verification is None:
            return False
        return self.verification.resend()

    def submit_code(self, code: str) -> VerificationOutcome:
        if self.verified:
            return VerificationOutcome.ACCEPTED if (code or "").strip() else VerificationOutcome.EMPTY_CODE
        if self.verification is None:
            if not (code or "").strip():
                return VerificationOutcome.EMPTY_CODE
            return VerificationOutcome.NOT_ISSUED

        outcome = self.verification.submit(code)
        if outcome == VerificationOutcome.ACCEPTED:
            self.verified = True
            self.verification.close()
            self.verification = None
        return outcome

    def is_complete(self) -> bool:
        is_valid, _ = validate_user_registration(self.fields)
        return is_valid and self.verified

    def payload(self) -> dict[str, Any]:
        return {
            "name": self.fields["name"].strip(),
            "email": self.fields["email"].strip(),
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "fields": {"name": self.fields["name"], "email": self.fields["email"]},
            "errors": self.errors,
            "can_send_code": self.can_send_code,
            "code_sent": self.code_sent,
            "verified": self.verified,
            "verification": self.verification.snapshot() if self.verification else None,
            "complete": self.is_complete(),
        }

    def leave(self) -> None:
        super().leave()
        self.close()

    def close(self) -> None:
        if self.verification is not None:
            self.verification.close()
            self.verification = None


# =============================================================================
# Step 2: Organization Setup
# =============================================================================

class OrganizationSetupStep(StepHandler):
    """
    Company details, metadata auto-fill and website scraping.

    Scraping may still be running when the step is left; it keeps going and
    the step's payload is re-announced once every page is done.
    """

    step = WorkflowStep.ORGANIZATION_SETUP
    FIELDS = tuple(OrganizationForm.model_fields)

    def __init__(
        self,
        scheduler: Scheduler,
        fetcher: MetadataFetcher,
        scraper: PageScraper,
        pages: Sequence[str],
        item_delay_seconds: float = 2.0,
        debounce_seconds: float = 0.5,
        initial_data: dict[str, str] | None = None,
        prevent_navigation: bool = False,
        spawn: Spawner | None = None,
    ):
        super().__init__()
        initial_data = initial_data or {}
        self.fields: dict[str, TrackedField] = {
            name: TrackedField.with_default(initial_data.get(name)) for name in self.FIELDS
        }
        self.pages = list(pages)
        self.item_delay_seconds = item_delay_seconds
        self.prevent_navigation = prevent_navigation

        self.lookup = DebouncedLookup(
            scheduler,
            fetcher,
            on_result=self._on_lookup_result,
            debounce_seconds=debounce_seconds,
            spawn=spawn,
        )
        self.tracker = JobTracker(scheduler, scraper, on_complete=self._on_job_complete)

        self.metadata: MetadataResponse | None = None
        self.meta_error = ""
        self.selected_page_id: str | None = None

        if self.fields["website_url"].value:
            self.lookup.request(self.fields["website_url"].value)

    # -------------------------------------------------------------------------
    # Fields and metadata
    # -------------------------------------------------------------------------

    def values(self) -> dict[str, str]:
        return {name: tracked.value for name, tracked in self.fields.items()}

    def set_field(self, name: str, value: str) -> None:
        if name not in self.fields:
            raise ValueError(f"Unknown organization field: {name}")
        self.fields[name].edit(value)
        if name == "website_url" and self.lookup.request(value):
            self.meta_error = ""

    def _on_lookup_result(self, result: LookupResult) -> None:
        if result.success:
            self.metadata = result.metadata
            self.meta_error = ""
            if self.fields["description"].autofill(result.metadata.description):
                logger.info("Description filled from website metadata")
            if self.fields["company_name"].autofill(company_name_from_title(result.metadata.title)):
                logger.info("Company name filled from website metadata")
        elif result.error.kind == LookupErrorKind.MALFORMED_INPUT:
            # The field's own validation message covers this.
            self.meta_error = ""
        else:
            self.metadata = None
            self.meta_error = result.error.message

    @property
    def is_fetching_meta(self) -> bool:
        return self.lookup.is_fetching

    @property
    def errors(self) -> dict[str, str]:
        return collect_field_errors(OrganizationForm, self.values())

    @property
    def is_setup_complete(self) -> bool:
        is_valid, _ = validate_organization(self.values())
        return is_valid

    # -------------------------------------------------------------------------
    # Scraping
    # -------------------------------------------------------------------------

    @property
    def is_training(self) -> bool:
        return self.tracker.is_running

    @property
    def all_pages_scraped(self) -> bool:
        return self.tracker.is_complete

    @property
    def continues_in_background(self) -> bool:
        """Leaving now would leave the scrape running."""
        return self.tracker.is_running

    def start_training(self) -> bool:
        if not self.pages or not self.is_setup_complete or self.tracker.is_running:
            return False
        specs = build_page_specs(self.pages, self.item_delay_seconds)
        return self.tracker.start(
            specs, context={"company_name": self.fields["company_name"].value.strip()}
        )

    def select_page(self, item_id: str) -> JobItem | None:
        item = self.tracker.select(item_id)
        if item is not None:
            self.selected_page_id = item_id
        return item

    @property
    def selected_page(self) -> JobItem | None:
        if self.selected_page_id is None:
            return None
        return self.tracker.select(self.selected_page_id)

    def _on_job_complete(self, job: BackgroundJob) -> None:
        if self.left and self.on_payload_changed:
            self.on_payload_changed(self)

    # -------------------------------------------------------------------------
    # StepHandler
    # -------------------------------------------------------------------------

    def is_complete(self) -> bool:
        return self.is_setup_complete and not self.prevent_navigation

    def payload(self) -> dict[str, Any]:
        values = self.values()
        return {
            "company_name": values["company_name"].strip(),
            "website_url": values["website_url"].strip(),
            "description": values["description"].strip(),
            "web_pages": self.tracker.job.to_list() if self.tracker.job else [],
        }

    def snapshot(self) -> dict[str, Any]:
        selected = self.selected_page
        return {
            "step": self.step.value,
            "fields": self.values(),
            "errors": self.errors,
            "is_fetching_meta": self.is_fetching_meta,
            "meta_error": self.meta_error,
            "setup_complete": self.is_setup_complete,
            "is_training": self.is_training,
            "all_pages_scraped": self.all_pages_scraped,
            "web_pages": self.tracker.job.to_list() if self.tracker.job else [],
            "selected_page": selected.to_dict() if selected else None,
            "continues_in_background": self.continues_in_background,
            "complete": self.is_complete(),
        }

    def leave(self) -> None:
        super().leave()
        self.lookup.cancel()

    def close(self) -> None:
        self.lookup.cancel()
        self.tracker.close()


# =============================================================================
# Step 3: Chatbot Integration
# =============================================================================

class ChatbotIntegrationStep(StepHandler):
    """Embed snippet, integration test and the demo chatbot toggle."""

    step = WorkflowStep.CHATBOT_INTEGRATION

    def __init__(
        self,
        scheduler: Scheduler,
        checker: IntegrationChecker,
        website_url: str = "",
        script_url: str = "https://example.com/chatbot.js",
        check_delay_seconds: float = 2.0,
    ):
        super().__init__()
        self.scheduler = scheduler
        self.checker = checker
        self.website_url = website_url
        self.script_url = script_url
        self.check_delay_seconds = check_delay_seconds

        self.is_loading = False
        self.is_integrated = False
        self.check_count = 0
        self.chatbot_open = False
        self.instructions_mailed = False
        self._check_handle: TimerHandle | None = None

    @property
    def embed_snippet(self) -> str:
        return embed_snippet(self.script_url)

    def test_integration(self) -> bool:
        """Schedule an integration check. Ignored while one is pending."""
        if self.is_loading:
            return False
        self.is_loading = True
        self._check_handle = self.scheduler.call_later(
            self.check_delay_seconds, self._finish_check
        )
        return True

    def _finish_check(self) -> None:
        self._check_handle = None
        self.check_count += 1
        try:
            detected = self.checker.check(self.website_url)
        except Exception as e:
            logger.warning(f"Integration check failed for {self.website_url}: {e}")
            detected = False
        self.is_loading = False
        self.is_integrated = self.is_integrated or detected
        logger.info(f"Integration check for {self.website_url}: detected={detected}")

    def open_chatbot(self) -> None:
        self.chatbot_open = True

    def close_chatbot(self) -> None:
        self.chatbot_open = False

    def mail_instructions(self) -> None:
        logger.info(f"Mailing integration instructions for {self.website_url}")
        self.instructions_mailed = True

    def is_complete(self) -> bool:
        return self.is_integrated

    def payload(self) -> dict[str, Any]:
        return {
            "integrated": self.is_integrated,
            "embed_snippet": self.embed_snippet,
            "instructions_mailed": self.instructions_mailed,
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "embed_snippet": self.embed_snippet,
            "is_loading": self.is_loading,
            "is_integrated": self.is_integrated,
            "chatbot_open": self.chatbot_open,
            "instructions_mailed": self.instructions_mailed,
            "complete": self.is_complete(),
        }

    def close(self) -> None:
        self.scheduler.cancel(self._check_handle)
        self._check_handle = None
        self.is_loading = False
