"""
Chatbot integration check.

After the user pastes the embed snippet into their site, the wizard asks an
IntegrationChecker whether the widget is live. The default checker accepts
every site, which is what the onboarding demo does.
"""

from abc import ABC, abstractmethod


def embed_snippet(script_url: str) -> str:
    """Snippet to paste inside the <head> tag of the user's website."""
    return f'<script src="{script_url}"></script>'


class IntegrationChecker(ABC):
    """Decides whether the chatbot widget is installed on a website."""

    @abstractmethod
    def check(self, website_url: str) -> bool:
        ...


class SimulatedIntegrationChecker(IntegrationChecker):
    """Always reports the widget as installed."""

    def check(self, website_url: str) -> bool:
        return True
