"""
Verification code sessions.

State machine:

    IDLE --send--> ISSUED --countdown hits 0--> EXPIRED
                     ^                             |
                     +-----------resend------------+
    ISSUED / EXPIRED --matching submit--> VERIFIED

EXPIRED only means "resend is unlocked"; the issued code can still be
accepted until a resend replaces it. Resend while the countdown is running
is ignored.

The code itself comes from a VerificationIssuer (delivery by email or SMS
is the issuer's business). The session only remembers that a code was
issued and asks the issuer whether a submission matches.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum

from .timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class VerificationStatus(str, Enum):
    IDLE = "idle"
    ISSUED = "issued"
    EXPIRED = "expired"  # countdown over, waiting for resend
    VERIFIED = "verified"


class VerificationOutcome(str, Enum):
    """Result of submitting a code."""

    ACCEPTED = "accepted"
    MISMATCH = "mismatch"
    EMPTY_CODE = "empty_code"
    NOT_ISSUED = "not_issued"


# =============================================================================
# Issuer collaborator
# =============================================================================


class VerificationIssuer(ABC):
    """Issues one-time codes and decides whether a submission matches."""

    @abstractmethod
    def issue(self, recipient: str) -> str:
        """Create (and deliver) a new code for recipient."""
        ...

    def matches(self, issued: str, submitted: str) -> bool:
        return secrets.compare_digest(issued.strip(), submitted.strip())


class RandomCodeIssuer(VerificationIssuer):
    """
    Numeric codes from the secrets module.

    Keeps the last code per recipient so development tooling can display it
    in place of a real mailbox.
    """

    def __init__(self, length: int = 6):
        self.length = length
        self.last_codes: dict[str, str] = {}

    def issue(self, recipient: str) -> str:
        code = "".join(secrets.choice("0123456789") for _ in range(self.length))
        self.last_codes[recipient] = code
        return code


# =============================================================================
# Session
# =============================================================================


class VerificationSession:
    """One recipient's code exchange with countdown and resend cooldown."""

    def __init__(
        self,
        scheduler: Scheduler,
        issuer: VerificationIssuer,
        window_seconds: int = 60,
        on_change: Callable[["VerificationSession"], None] | None = None,
    ):
        self.scheduler = scheduler
        self.issuer = issuer
        self.window_seconds = window_seconds
        self.on_change = on_change

        self.status = VerificationStatus.IDLE
        self.recipient: str | None = None
        self.issued_at: float | None = None
        self.expires_in_seconds = window_seconds
        self.attempted_code = ""
        self.send_count = 0

        self._code: str | None = None
        self._tick_handle: TimerHandle | None = None

    @property
    def is_issued(self) -> bool:
        return self._code is not None

    @property
    def can_resend(self) -> bool:
        return self.status == VerificationStatus.EXPIRED and self.expires_in_seconds == 0

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def send(self, recipient: str) -> bool:
        """Issue the first code. Only valid from IDLE."""
        if self.status != VerificationStatus.IDLE:
            logger.debug(f"Send ignored, session is {self.status.value}")
            return False
        self.recipient = recipient
        self._issue()
        return True

    def resend(self) -> bool:
        """Issue a replacement code once the countdown has reached zero."""
        if not self.can_resend:
            logger.debug(f"Resend ignored, {self.expires_in_seconds}s left")
            return False
        self._issue()
        return True

    def submit(self, code: str) -> VerificationOutcome:
        """Check a submitted code. A mismatch leaves the countdown alone."""
        code = (code or "").strip()
        self.attempted_code = code
        if not code:
            return VerificationOutcome.EMPTY_CODE
        if self.status == VerificationStatus.VERIFIED:
            return VerificationOutcome.ACCEPTED
        if self._code is None:
            return VerificationOutcome.NOT_ISSUED
        if not self.issuer.matches(self._code, code):
            logger.info(f"Verification code mismatch for {self.recipient}")
            return VerificationOutcome.MISMATCH

        self.scheduler.cancel(self._tick_handle)
        self._tick_handle = None
        self._code = None
        self.status = VerificationStatus.VERIFIED
        logger.info(f"Verified {self.recipient}")
        self._notify()
        return VerificationOutcome.ACCEPTED

    def close(self) -> None:
        """Stop the countdown and forget the code."""
        self.scheduler.cancel(self._tick_handle)
        self._tick_handle = None
        self._code = None

    def snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "recipient": self.recipient,
            "expires_in_seconds": self.expires_in_seconds,
            "can_resend": self.can_resend,
            "send_count": self.send_count,
        }

    # -------------------------------------------------------------------------
    # Countdown
    # -------------------------------------------------------------------------

    def _issue(self) -> None:
        self._code = self.issuer.issue(self.recipient or "")
        self.send_count += 1
        self.issued_at = self.scheduler.now()
        self.attempted_code = ""
        logger.info(f"Verification code issued to {self.recipient} (send #{self.send_count})")
        self._start_countdown()

    def _start_countdown(self) -> None:
        # At most one live tick chain per session.
        self.scheduler.cancel(self._tick_handle)
        self.expires_in_seconds = self.window_seconds
        self.status = VerificationStatus.ISSUED
        self._tick_handle = self.scheduler.call_later(TICK_SECONDS, self._tick)
        self._notify()

    def _tick(self) -> None:
        self.expires_in_seconds = max(self.expires_in_seconds - 1, 0)
        if self.expires_in_seconds == 0:
            self._tick_handle = None
            self.status = VerificationStatus.EXPIRED
            logger.debug(f"Verification countdown finished for {self.recipient}")
        else:
            self._tick_handle = self.scheduler.call_later(TICK_SECONDS, self._tick)
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self)
