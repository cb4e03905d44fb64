"""Tests for verification code sessions."""

from onboarding.verification import (
    RandomCodeIssuer,
    VerificationOutcome,
    VerificationSession,
    VerificationStatus,
)


def _session(clock, issuer, window=60):
    return VerificationSession(clock, issuer, window_seconds=window)


class TestCountdown:

    def test_send_starts_countdown(self, clock, issuer):
        session = _session(clock, issuer)
        assert session.send("ada@example.com")
        assert session.status == VerificationStatus.ISSUED
        assert session.expires_in_seconds == 60
        assert not session.can_resend

        clock.advance(10)
        assert session.expires_in_seconds == 50

    def test_expires_after_window(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(59)
        assert session.status == VerificationStatus.ISSUED
        assert not session.can_resend

        clock.advance(1)
        assert session.status == VerificationStatus.EXPIRED
        assert session.expires_in_seconds == 0
        assert session.can_resend
        assert clock.pending == 0

    def test_can_resend_only_when_expired(self, clock, issuer):
        session = _session(clock, issuer, window=5)
        session.send("ada@example.com")
        for _ in range(5):
            assert session.can_resend == (
                session.status == VerificationStatus.EXPIRED and session.expires_in_seconds == 0
            )
            clock.advance(1)
        assert session.can_resend

    def test_second_send_is_ignored(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        assert not session.send("ada@example.com")
        assert session.send_count == 1


class TestResend:

    def test_resend_blocked_while_counting(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(30)
        assert not session.resend()
        assert session.expires_in_seconds == 30
        assert session.send_count == 1

    def test_resend_resets_window(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(60)
        assert session.resend()
        assert session.status == VerificationStatus.ISSUED
        assert session.expires_in_seconds == 60
        assert session.send_count == 2

    def test_resend_does_not_double_tick_rate(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(60)
        session.resend()
        clock.advance(10)
        assert session.expires_in_seconds == 50
        assert clock.pending == 1

    def test_resend_invalidates_old_code(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        old_code = issuer.last_code
        clock.advance(60)
        session.resend()

        assert session.submit(old_code) == VerificationOutcome.MISMATCH
        assert session.submit(issuer.last_code) == VerificationOutcome.ACCEPTED


class TestSubmit:

    def test_correct_code_verifies(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(5)
        assert session.submit(issuer.last_code) == VerificationOutcome.ACCEPTED
        assert session.is_verified
        assert clock.pending == 0

    def test_code_still_accepted_after_countdown(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(90)
        assert session.submit(issuer.last_code) == VerificationOutcome.ACCEPTED

    def test_mismatch_leaves_countdown_alone(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        clock.advance(20)
        assert session.submit("000000") == VerificationOutcome.MISMATCH
        assert session.status == VerificationStatus.ISSUED
        assert session.expires_in_seconds == 40
        clock.advance(1)
        assert session.expires_in_seconds == 39

    def test_empty_code(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        assert session.submit("") == VerificationOutcome.EMPTY_CODE
        assert session.submit("   ") == VerificationOutcome.EMPTY_CODE
        assert session.status == VerificationStatus.ISSUED

    def test_submit_before_send(self, clock, issuer):
        session = _session(clock, issuer)
        assert session.submit("123456") == VerificationOutcome.NOT_ISSUED

    def test_code_is_trimmed(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        assert session.submit(f" {issuer.last_code} ") == VerificationOutcome.ACCEPTED


class TestClose:

    def test_close_cancels_countdown(self, clock, issuer):
        session = _session(clock, issuer)
        session.send("ada@example.com")
        session.close()
        clock.advance(120)
        assert session.expires_in_seconds == 60
        assert clock.pending == 0


class TestRandomCodeIssuer:

    def test_codes_are_digits_of_requested_length(self):
        issuer = RandomCodeIssuer(length=6)
        code = issuer.issue("ada@example.com")
        assert len(code) == 6
        assert code.isdigit()
        assert issuer.last_codes["ada@example.com"] == code
