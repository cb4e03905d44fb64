"""
Onboarding Wizard.

Walks a new customer through account creation, organization setup and
chatbot integration, coordinating the timed background work each step
starts along the way.

Steps:
1. User Registration - account fields, email verification code with resend cooldown
2. Organization Setup - company details, debounced website metadata auto-fill,
   background website scraping
3. Chatbot Integration - embed snippet and integration check
4. Success - terminal

"""

__version__ = "0.1.0"

from .aggregator import StepDataAggregator
from .orchestrator import WorkflowOrchestrator
from .state import WorkflowState, WorkflowStep

__all__ = [
    "StepDataAggregator",
    "WorkflowOrchestrator",
    "WorkflowState",
    "WorkflowStep",
]
