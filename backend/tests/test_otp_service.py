"""Tests for the one-time code ledger with a simulated clock.

Covers:
- Issue / validate happy path, code shape
- Expiry: validation after the window fails with EXPIRED, attempts untouched
- Attempt cap: five wrong codes, then ATTEMPTS_EXCEEDED even for the right code
- Re-issue replaces the earlier code for the same (email, purpose)
- Purposes are independent of each other
- Sweep removes only expired records
"""
from datetime import datetime, timedelta, timezone

from student_events.models.otp import OTP, OTPPurpose
from student_events.services import otp_service
from student_events.services.otp_service import OTPFailure

EMAIL = "otp@campus.edu"
T0 = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def _record(db, purpose=OTPPurpose.login) -> OTP:
    db.expire_all()
    return db.query(OTP).filter(OTP.email == EMAIL, OTP.purpose == purpose).one()


class TestIssue:
    """Issuing codes."""

    def test_code_is_six_digits(self, db):
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        assert len(code) == 6
        assert code.isdigit()

    def test_record_starts_fresh(self, db):
        otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        record = _record(db)
        assert record.attempts == 0
        assert record.is_verified is False

    def test_email_is_normalised(self, db):
        code = otp_service.issue(db, "  OTP@Campus.EDU ", OTPPurpose.login, now=T0)
        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0)
        assert result.accepted

    def test_reissue_replaces_previous_code(self, db):
        """Only one record per (email, purpose); the old code no longer validates."""
        first = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        second = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0 + timedelta(minutes=1))
        assert db.query(OTP).filter(OTP.email == EMAIL, OTP.purpose == OTPPurpose.login).count() == 1

        if first != second:
            result = otp_service.validate(db, EMAIL, first, OTPPurpose.login, now=T0 + timedelta(minutes=2))
            assert not result.accepted
            assert result.reason == OTPFailure.invalid_code

        result = otp_service.validate(db, EMAIL, second, OTPPurpose.login, now=T0 + timedelta(minutes=2))
        assert result.accepted

    def test_verified_code_cannot_be_reused(self, db):
        first = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        assert otp_service.validate(db, EMAIL, first, OTPPurpose.login, now=T0).accepted

        result = otp_service.validate(db, EMAIL, first, OTPPurpose.login, now=T0)
        assert result.reason == OTPFailure.not_found

    def test_purposes_are_independent(self, db):
        login_code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        otp_service.issue(db, EMAIL, OTPPurpose.password_reset, now=T0)

        assert otp_service.validate(db, EMAIL, login_code, OTPPurpose.login, now=T0).accepted
        result = otp_service.validate(db, EMAIL, login_code, OTPPurpose.email_verification, now=T0)
        assert result.reason == OTPFailure.not_found


class TestValidate:
    """Validation order: not found, expired, attempt cap, code comparison."""

    def test_unknown_email_not_found(self, db):
        result = otp_service.validate(db, "nobody@campus.edu", "123456", OTPPurpose.login, now=T0)
        assert not result.accepted
        assert result.reason == OTPFailure.not_found
        assert result.message

    def test_accepts_and_returns_linked_user(self, db):
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, user_id=None, now=T0)
        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0 + timedelta(minutes=9))
        assert result.accepted
        assert result.reason is None
        assert _record(db).is_verified is True

    def test_expired_after_window(self, db):
        """Validated 11 minutes after issue -> EXPIRED, attempts unchanged."""
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0 + timedelta(minutes=11))
        assert not result.accepted
        assert result.reason == OTPFailure.expired
        assert _record(db).attempts == 0

    def test_naive_clock_is_treated_as_utc(self, db):
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0.replace(tzinfo=None))
        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0 + timedelta(minutes=5))
        assert result.accepted

    def test_wrong_code_counts_attempt(self, db):
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        result = otp_service.validate(db, EMAIL, _wrong(code), OTPPurpose.login, now=T0)
        assert result.reason == OTPFailure.invalid_code
        assert _record(db).attempts == 1

    def test_attempt_cap(self, db):
        """5 wrong codes -> INVALID_CODE x5; the 6th attempt fails even with the right code."""
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        for _ in range(5):
            result = otp_service.validate(db, EMAIL, _wrong(code), OTPPurpose.login, now=T0)
            assert result.reason == OTPFailure.invalid_code

        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0)
        assert not result.accepted
        assert result.reason == OTPFailure.attempts_exceeded
        assert _record(db).attempts == 5

    def test_expiry_checked_before_attempt_cap(self, db):
        code = otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        for _ in range(5):
            otp_service.validate(db, EMAIL, _wrong(code), OTPPurpose.login, now=T0)

        result = otp_service.validate(db, EMAIL, code, OTPPurpose.login, now=T0 + timedelta(minutes=30))
        assert result.reason == OTPFailure.expired

    def test_non_ascii_input_is_a_plain_mismatch(self, db):
        otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0)
        result = otp_service.validate(db, EMAIL, "١٢٣٤٥٦", OTPPurpose.login, now=T0)
        assert result.reason == OTPFailure.invalid_code


class TestSweep:
    """Operator sweep of expired records."""

    def test_sweep_removes_only_expired(self, db):
        otp_service.issue(db, "old@campus.edu", OTPPurpose.login, now=T0)
        otp_service.issue(db, "new@campus.edu", OTPPurpose.login, now=T0 + timedelta(minutes=8))

        removed = otp_service.sweep_expired(db, now=T0 + timedelta(minutes=12))
        assert removed == 1
        remaining = [r.email for r in db.query(OTP).all()]
        assert remaining == ["new@campus.edu"]

    def test_issue_lazily_drops_stale_records(self, db):
        otp_service.issue(db, "old@campus.edu", OTPPurpose.login, now=T0)
        otp_service.issue(db, EMAIL, OTPPurpose.login, now=T0 + timedelta(hours=1))
        assert db.query(OTP).filter(OTP.email == "old@campus.edu").count() == 0
