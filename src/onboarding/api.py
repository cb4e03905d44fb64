"""
Onboarding API Endpoints.

Thin HTTP surface over WorkflowOrchestrator. Sessions live in memory until
they are ended or sit idle past session_expire_hours; every response carries
the session snapshot so a client can render the wizard without further calls.
"""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from . import __version__
from .config import get_settings
from .orchestrator import WorkflowOrchestrator
from .state import WorkflowStep
from .steps import ChatbotIntegrationStep, OrganizationSetupStep, UserRegistrationStep
from .verification import VerificationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


# =============================================================================
# Session Store
# =============================================================================

class SessionStore:
    """
    In-memory onboarding sessions keyed by session id.

    A session untouched for `expire_hours` is ended (and its pending work
    cancelled) the next time the store is used.
    """

    def __init__(
        self,
        factory: Callable[[str], WorkflowOrchestrator] | None = None,
        expire_hours: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory or (lambda session_id: WorkflowOrchestrator(user_id=session_id))
        self._expire_hours = expire_hours
        self._clock = clock
        self._sessions: dict[str, WorkflowOrchestrator] = {}
        self._last_active: dict[str, float] = {}

    @property
    def expire_hours(self) -> float:
        if self._expire_hours is None:
            return get_settings().session_expire_hours
        return self._expire_hours

    def is_expired(self, session_id: str) -> bool:
        """Check if a session has been idle longer than expire_hours."""
        last_active = self._last_active.get(session_id)
        if last_active is None:
            return False
        hours_since = (self._clock() - last_active) / 3600
        return hours_since >= self.expire_hours

    def purge_expired(self) -> int:
        """End every expired session. Returns how many were ended."""
        expired = [session_id for session_id in self._sessions if self.is_expired(session_id)]
        for session_id in expired:
            logger.info(f"Onboarding session {session_id} expired")
            self.end(session_id)
        return len(expired)

    def create(self) -> tuple[str, WorkflowOrchestrator]:
        self.purge_expired()
        session_id = uuid.uuid4().hex
        orchestrator = self._factory(session_id)
        self._sessions[session_id] = orchestrator
        self._last_active[session_id] = self._clock()
        logger.info(f"Created onboarding session {session_id}")
        return session_id, orchestrator

    def get(self, session_id: str) -> WorkflowOrchestrator | None:
        self.purge_expired()
        orchestrator = self._sessions.get(session_id)
        if orchestrator is not None:
            self._last_active[session_id] = self._clock()
        return orchestrator

    def end(self, session_id: str) -> bool:
        orchestrator = self._sessions.pop(session_id, None)
        self._last_active.pop(session_id, None)
        if orchestrator is None:
            return False
        orchestrator.close()
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.end(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


_store = SessionStore()


def get_store() -> SessionStore:
    return _store


# =============================================================================
# Request/Response Models
# =============================================================================

class RegistrationFieldsRequest(BaseModel):
    """Step 1: any subset of the account fields."""
    name: str | None = None
    email: str | None = None
    password: str | None = None


class VerifyCodeRequest(BaseModel):
    """Step 1: the code the user typed."""
    code: str = ""


class OrganizationFieldsRequest(BaseModel):
    """Step 2: any subset of the organization fields."""
    company_name: str | None = None
    website_url: str | None = None
    description: str | None = None


class AdvanceRequest(BaseModel):
    """Leave the named step."""
    from_step: WorkflowStep


class SessionResponse(BaseModel):
    """Result of an action plus the session snapshot after it."""
    session_id: str
    success: bool = True
    message: str = ""
    session: dict = Field(default_factory=dict)


def _respond(
    session_id: str,
    orchestrator: WorkflowOrchestrator,
    success: bool = True,
    message: str = "",
) -> SessionResponse:
    return SessionResponse(
        session_id=session_id,
        success=success,
        message=message,
        session=orchestrator.snapshot(),
    )


# =============================================================================
# Dependencies
# =============================================================================

def get_session(session_id: str, store: SessionStore = Depends(get_store)) -> WorkflowOrchestrator:
    orchestrator = store.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail=f"Unknown onboarding session: {session_id}")
    return orchestrator


def _require_step(orchestrator: WorkflowOrchestrator, step: WorkflowStep):
    if orchestrator.current_step != step:
        raise HTTPException(
            status_code=409,
            detail=f"Session is on {orchestrator.current_step.value}, not {step.value}",
        )
    return orchestrator.current_handler


# =============================================================================
# Endpoints: Session
# =============================================================================

@router.post("/sessions", response_model=SessionResponse)
async def create_session(store: SessionStore = Depends(get_store)):
    """Start a new onboarding session at the first step."""
    session_id, orchestrator = store.create()
    return _respond(session_id, orchestrator)


@router.get("/{session_id}/state", response_model=SessionResponse)
async def get_state(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    return _respond(session_id, orchestrator)


@router.post("/{session_id}/advance", response_model=SessionResponse)
async def advance(
    session_id: str,
    request: AdvanceRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    """
    Leave `from_step` and move to the next step.

    An advance from the wrong step or from an incomplete step changes
    nothing and reports success=False.
    """
    moved = orchestrator.advance(request.from_step)
    message = "" if moved else f"Cannot continue from {request.from_step.value}"
    return _respond(session_id, orchestrator, success=moved, message=message)


@router.delete("/{session_id}")
async def end_session(session_id: str, store: SessionStore = Depends(get_store)):
    """End a session and cancel all of its pending work."""
    if not store.end(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown onboarding session: {session_id}")
    return {"success": True}


# =============================================================================
# Endpoints: User Registration
# =============================================================================

@router.put("/{session_id}/registration/fields", response_model=SessionResponse)
async def update_registration_fields(
    session_id: str,
    request: RegistrationFieldsRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    step: UserRegistrationStep = _require_step(orchestrator, WorkflowStep.USER_REGISTRATION)
    accepted = True
    for name, value in request.model_dump(exclude_none=True).items():
        accepted = step.set_field(name, value) and accepted
    message = "" if accepted else "Fields are locked once a verification code has been sent"
    return _respond(session_id, orchestrator, success=accepted, message=message)


@router.post("/{session_id}/registration/send-code", response_model=SessionResponse)
async def send_code(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    step: UserRegistrationStep = _require_step(orchestrator, WorkflowStep.USER_REGISTRATION)
    sent = step.send_code()
    message = "Verification code sent" if sent else "Please fix the highlighted fields"
    return _respond(session_id, orchestrator, success=sent, message=message)


@router.post("/{session_id}/registration/resend-code", response_model=SessionResponse)
async def resend_code(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    step: UserRegistrationStep = _require_step(orchestrator, WorkflowStep.USER_REGISTRATION)
    sent = step.resend_code()
    message = "Verification code resent" if sent else "Resend is not available yet"
    return _respond(session_id, orchestrator, success=sent, message=message)


_VERIFY_MESSAGES = {
    VerificationOutcome.ACCEPTED: "Email verified",
    VerificationOutcome.MISMATCH: "Invalid verification code",
    VerificationOutcome.EMPTY_CODE: "Please enter the verification code",
    VerificationOutcome.NOT_ISSUED: "No verification code has been sent",
}


@router.post("/{session_id}/registration/verify", response_model=SessionResponse)
async def verify_code(
    session_id: str,
    request: VerifyCodeRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    step: UserRegistrationStep = _require_step(orchestrator, WorkflowStep.USER_REGISTRATION)
    outcome = step.submit_code(request.code)
    return _respond(
        session_id,
        orchestrator,
        success=outcome == VerificationOutcome.ACCEPTED,
        message=_VERIFY_MESSAGES[outcome],
    )


# =============================================================================
# Endpoints: Organization Setup
# =============================================================================

@router.put("/{session_id}/organization/fields", response_model=SessionResponse)
async def update_organization_fields(
    session_id: str,
    request: OrganizationFieldsRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    step: OrganizationSetupStep = _require_step(orchestrator, WorkflowStep.ORGANIZATION_SETUP)
    for name, value in request.model_dump(exclude_none=True).items():
        step.set_field(name, value)
    return _respond(session_id, orchestrator)


@router.post("/{session_id}/organization/scrape", response_model=SessionResponse)
async def start_scrape(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    step: OrganizationSetupStep = _require_step(orchestrator, WorkflowStep.ORGANIZATION_SETUP)
    started = step.start_training()
    message = "Website scraping started" if started else "Complete the organization details first"
    return _respond(session_id, orchestrator, success=started, message=message)


@router.get("/{session_id}/organization/pages/{item_id}")
async def get_page(
    session_id: str,
    item_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    """Scrape result for one page. Readable even after the step was left."""
    step = orchestrator.handler(WorkflowStep.ORGANIZATION_SETUP)
    if not isinstance(step, OrganizationSetupStep):
        raise HTTPException(status_code=409, detail="Organization setup has not been reached")
    item = step.select_page(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Unknown page: {item_id}")
    return item.to_dict()


# =============================================================================
# Endpoints: Chatbot Integration
# =============================================================================

@router.post("/{session_id}/integration/check", response_model=SessionResponse)
async def check_integration(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    step: ChatbotIntegrationStep = _require_step(orchestrator, WorkflowStep.CHATBOT_INTEGRATION)
    started = step.test_integration()
    message = "Checking integration" if started else "An integration check is already running"
    return _respond(session_id, orchestrator, success=started, message=message)


@router.post("/{session_id}/integration/chatbot/{action}", response_model=SessionResponse)
async def toggle_chatbot(
    session_id: str,
    action: str,
    orchestrator: WorkflowOrchestrator = Depends(get_session),
):
    step: ChatbotIntegrationStep = _require_step(orchestrator, WorkflowStep.CHATBOT_INTEGRATION)
    if action == "open":
        step.open_chatbot()
    elif action == "close":
        step.close_chatbot()
    else:
        raise HTTPException(status_code=400, detail=f"Unknown chatbot action: {action}")
    return _respond(session_id, orchestrator)


@router.post("/{session_id}/integration/mail-instructions", response_model=SessionResponse)
async def mail_instructions(session_id: str, orchestrator: WorkflowOrchestrator = Depends(get_session)):
    step: ChatbotIntegrationStep = _require_step(orchestrator, WorkflowStep.CHATBOT_INTEGRATION)
    step.mail_instructions()
    return _respond(session_id, orchestrator, message="Integration instructions sent")


# =============================================================================
# App
# =============================================================================

def create_app() -> FastAPI:
    app = FastAPI(title="Onboarding Wizard", version=__version__)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.on_event("shutdown")
    async def close_sessions():
        get_store().close_all()

    return app


app = create_app()
