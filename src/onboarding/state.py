"""
Onboarding State Management.

Tracks progress through the onboarding steps and owns the combined step data.
State lives for the lifetime of the process only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .aggregator import StepDataAggregator


class WorkflowStep(Enum):
    """Onboarding steps, in order."""
    USER_REGISTRATION = "user-registration"
    ORGANIZATION_SETUP = "organization-setup"
    CHATBOT_INTEGRATION = "chatbot-integration"
    SUCCESS = "success"                      # Terminal


STEP_TITLES = {
    WorkflowStep.USER_REGISTRATION: "User Registration",
    WorkflowStep.ORGANIZATION_SETUP: "Setup Organisation",
    WorkflowStep.CHATBOT_INTEGRATION: "Chatbot Integration",
    WorkflowStep.SUCCESS: "Success",
}

STEP_ORDER = list(WorkflowStep)
TERMINAL_STEP = WorkflowStep.SUCCESS


class StepStatus(Enum):
    """How a step is shown in the stepper."""
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class WorkflowState:
    """
    Main onboarding session state.

    current_step only ever moves forward. step_data is the aggregator holding
    each finished step's payload.
    """
    user_id: str = ""
    current_step: WorkflowStep = WorkflowStep.USER_REGISTRATION
    step_data: StepDataAggregator = field(default_factory=StepDataAggregator)

    # Metadata
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        """Set timestamps if not provided."""
        now = _utc_now()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now

    @property
    def is_finished(self) -> bool:
        return self.current_step == TERMINAL_STEP

    def touch(self) -> None:
        self.updated_at = _utc_now()

    def to_dict(self) -> dict:
        """Serialize state for presentation."""
        return {
            "user_id": self.user_id,
            "current_step": self.current_step.value,
            "steps_completed": get_completed_steps(self),
            "step_data": self.step_data.combined(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def get_next_step(step: WorkflowStep) -> WorkflowStep:
    """Step after `step`. The terminal step is its own successor."""
    index = STEP_ORDER.index(step)
    if index + 1 < len(STEP_ORDER):
        return STEP_ORDER[index + 1]
    return step


def get_completed_steps(state: WorkflowState) -> list[str]:
    """Get list of completed step ids."""
    current_idx = STEP_ORDER.index(state.current_step)
    return [step.value for step in STEP_ORDER[:current_idx]]


def step_progress(state: WorkflowState) -> list[dict]:
    """Stepper view: every step with its title and status."""
    current_idx = STEP_ORDER.index(state.current_step)
    progress = []
    for index, step in enumerate(STEP_ORDER):
        if index < current_idx:
            status = StepStatus.COMPLETED
        elif index == current_idx:
            status = StepStatus.IN_PROGRESS
        else:
            status = StepStatus.PENDING
        progress.append({
            "id": step.value,
            "title": STEP_TITLES[step],
            "position": index + 1,
            "status": status.value,
        })
    return progress
