"""
Pytest configuration and fixtures for onboarding tests.
"""

import asyncio
import os

import pytest

# Set test environment before importing onboarding modules
os.environ["ONBOARDING_ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"

from onboarding.config import OnboardingSettings
from onboarding.lookup import MetadataFetcher, MetadataResponse
from onboarding.orchestrator import WorkflowOrchestrator
from onboarding.timers import VirtualClock
from onboarding.verification import VerificationIssuer


class FakeFetcher(MetadataFetcher):
    """
    Scripted metadata source.

    `responses` maps url -> MetadataResponse or an exception to raise.
    When `gate` is set, every fetch waits on it before answering so tests
    can issue newer queries while an older one is in flight.
    """

    def __init__(self, responses: dict | None = None, default: MetadataResponse | None = None):
        self.responses = responses or {}
        self.default = default or MetadataResponse(
            title="Acme Corp | Rockets and more",
            description="Acme builds rockets.",
        )
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, url: str) -> MetadataResponse:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.get(url, self.default)
        if isinstance(response, BaseException):
            raise response
        return response


class SequenceIssuer(VerificationIssuer):
    """Hands out predictable codes: 111111, 222222, ..."""

    def __init__(self):
        self.issued: list[tuple[str, str]] = []

    def issue(self, recipient: str) -> str:
        code = str(len(self.issued) + 1) * 6
        self.issued.append((recipient, code))
        return code

    @property
    def last_code(self) -> str:
        return self.issued[-1][1]


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def issuer():
    return SequenceIssuer()


@pytest.fixture
def test_settings():
    return OnboardingSettings(
        onboarding_env="development",
        lookup_debounce_seconds=0.5,
        verification_window_seconds=60,
        scrape_pages=["Home", "About Us", "Contact"],
        scrape_item_delay_seconds=2.0,
        integration_check_seconds=2.0,
    )


@pytest.fixture
def make_orchestrator(clock, fetcher, issuer, test_settings):
    """Factory for orchestrators wired to the virtual clock and fakes."""

    def _make(**overrides) -> WorkflowOrchestrator:
        kwargs = dict(
            user_id="test-user",
            scheduler=clock,
            settings=test_settings,
            fetcher=fetcher,
            issuer=issuer,
        )
        kwargs.update(overrides)
        return WorkflowOrchestrator(**kwargs)

    return _make


@pytest.fixture
def registration_data():
    return {"name": "Ada Lovelace", "email": "ada@example.com", "password": "analytical"}


@pytest.fixture
def organization_data():
    return {
        "company_name": "Acme Corp",
        "website_url": "https://acme.example",
        "description": "Acme builds rockets.",
    }
