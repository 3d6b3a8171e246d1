from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.models import OTPPurpose, OTPToken
from app.services import OTPService
from app.services.otp_service import (
    INVALID_OR_EXPIRED_MESSAGE,
    TOO_MANY_ATTEMPTS_MESSAGE,
    VERIFIED_MESSAGE,
)


def _wrong_code(code: str) -> str:
    return "100000" if code != "100000" else "100001"


def _tokens_for(session, email):
    session.expire_all()
    return session.execute(select(OTPToken).where(OTPToken.email == email)).scalars().all()


def test_issue_creates_fresh_token(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)

    otp = service.issue(email=email.upper(), purpose=OTPPurpose.EMAIL_VERIFICATION)

    assert otp is not None
    assert otp.email == email
    assert otp.code.isdigit() and len(otp.code) == 6
    assert 100000 <= int(otp.code) <= 999999
    assert otp.attempts == 0
    assert otp.max_attempts == 3
    assert otp.is_used is False
    assert otp.verified_at is None
    assert otp.expires_at - otp.created_at == timedelta(minutes=10)
    assert otp.is_effective()


def test_issue_does_not_invalidate_previous_tokens(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)

    first = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)
    second = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    assert first.id != second.id
    assert all(not token.is_used for token in _tokens_for(db_session, email))


def test_issue_returns_none_when_store_write_fails(db_session, unique_email, monkeypatch):
    from sqlalchemy.exc import OperationalError

    service = OTPService(db_session)

    def _boom():
        raise OperationalError("INSERT", {}, Exception("connection lost"))

    monkeypatch.setattr(db_session, "commit", _boom)

    assert service.issue(email=unique_email(), purpose=OTPPurpose.PASSWORD_RESET) is None


def test_verify_success_is_single_use(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.PASSWORD_RESET, user_id=None)

    first = service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)
    second = service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)

    assert first.success is True
    assert first.message == VERIFIED_MESSAGE
    assert second.success is False
    assert second.message == INVALID_OR_EXPIRED_MESSAGE

    stored = _tokens_for(db_session, email)[0]
    assert stored.is_used is True
    assert stored.verified_at is not None


def test_verify_matches_email_case_insensitively(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    result = service.verify(email=f"  {email.upper()} ", code=otp.code, purpose=OTPPurpose.EMAIL_VERIFICATION)

    assert result.success is True


def test_verify_rejects_expired_token_even_with_correct_code(db_session, unique_email):
    email = unique_email()
    issued_at = datetime.now(tz=timezone.utc)
    otp = OTPService(db_session, clock=lambda: issued_at).issue(
        email=email, purpose=OTPPurpose.EMAIL_VERIFICATION
    )

    later = OTPService(db_session, clock=lambda: issued_at + timedelta(minutes=10, seconds=1))
    result = later.verify(email=email, code=otp.code, purpose=OTPPurpose.EMAIL_VERIFICATION)

    assert result.success is False
    assert result.message == INVALID_OR_EXPIRED_MESSAGE


def test_attempt_ceiling_counts_down_then_locks(db_session, unique_email):
    email = unique_email("scenario-a")
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)
    wrong = _wrong_code(otp.code)

    messages = [
        service.verify(email=email, code=wrong, purpose=OTPPurpose.EMAIL_VERIFICATION).message
        for _ in range(3)
    ]
    assert messages == [
        "Incorrect code, 2 attempts remaining",
        "Incorrect code, 1 attempts remaining",
        "Incorrect code, 0 attempts remaining",
    ]

    final = service.verify(email=email, code=otp.code, purpose=OTPPurpose.EMAIL_VERIFICATION)
    assert final.success is False
    assert final.message == TOO_MANY_ATTEMPTS_MESSAGE

    stored = _tokens_for(db_session, email)[0]
    assert stored.attempts == 3
    assert stored.is_used is False
    assert not stored.is_effective()


def test_purpose_isolation(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    cross = service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)
    assert cross.success is False
    assert cross.message == INVALID_OR_EXPIRED_MESSAGE

    # The failed cross-purpose call must not burn an attempt on the real token
    same = service.verify(email=email, code=otp.code, purpose=OTPPurpose.EMAIL_VERIFICATION)
    assert same.success is True


def test_resend_supersedes_previous_code(db_session, unique_email, monkeypatch):
    email = unique_email()
    service = OTPService(db_session)
    monkeypatch.setattr(service.settings, "OTP_STATIC_CODE", "111111")
    old = service.issue(email=email, purpose=OTPPurpose.ACCOUNT_RECOVERY)

    monkeypatch.setattr(service.settings, "OTP_STATIC_CODE", "222222")
    new = service.resend(email=email, purpose=OTPPurpose.ACCOUNT_RECOVERY)
    assert new is not None and new.id != old.id

    stale = service.verify(email=email, code=old.code, purpose=OTPPurpose.ACCOUNT_RECOVERY)
    assert stale.success is False
    assert stale.message == "Incorrect code, 2 attempts remaining"

    fresh = service.verify(email=email, code=new.code, purpose=OTPPurpose.ACCOUNT_RECOVERY)
    assert fresh.success is True
    again = service.verify(email=email, code=new.code, purpose=OTPPurpose.ACCOUNT_RECOVERY)
    assert again.success is False

    stored = {token.id: token for token in _tokens_for(db_session, email)}
    assert stored[old.id].is_used is True
    assert stored[old.id].verified_at is None


def test_resend_only_supersedes_matching_purpose(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)
    verification = service.issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    service.resend(email=email, purpose=OTPPurpose.PASSWORD_RESET)

    result = service.verify(email=email, code=verification.code, purpose=OTPPurpose.EMAIL_VERIFICATION)
    assert result.success is True


def test_verify_returns_bound_user_id(db_session, unique_email, make_profile):
    email = unique_email("scenario-c")
    profile = make_profile(email)
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.PASSWORD_RESET, user_id=profile.id)

    result = service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)
    assert result.success is True
    assert result.user_id == profile.id

    replay = service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)
    assert replay.success is False


def test_most_recent_token_is_authoritative(db_session, unique_email, monkeypatch):
    email = unique_email()
    base = datetime.now(tz=timezone.utc)
    settings = OTPService(db_session).settings
    monkeypatch.setattr(settings, "OTP_STATIC_CODE", "333333")
    older = OTPService(db_session, clock=lambda: base - timedelta(minutes=1)).issue(
        email=email, purpose=OTPPurpose.EMAIL_VERIFICATION
    )
    monkeypatch.setattr(settings, "OTP_STATIC_CODE", "444444")
    newer = OTPService(db_session, clock=lambda: base).issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    service = OTPService(db_session)
    result = service.verify(email=email, code=older.code, purpose=OTPPurpose.EMAIL_VERIFICATION)
    assert result.success is False
    assert result.message == "Incorrect code, 2 attempts remaining"

    assert service.verify(email=email, code=newer.code, purpose=OTPPurpose.EMAIL_VERIFICATION).success is True


def test_conditional_update_rejects_stale_state(session_factory, unique_email):
    email = unique_email()
    writer = session_factory()
    reader = session_factory()
    try:
        otp = OTPService(writer).issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

        stale = reader.get(OTPToken, otp.id)
        assert stale.attempts == 0

        # Another request consumes an attempt after the stale read
        OTPService(writer).verify(email=email, code=_wrong_code(otp.code), purpose=OTPPurpose.EMAIL_VERIFICATION)

        now = datetime.now(tz=timezone.utc)
        applied = OTPService(reader)._apply(stale, now, is_used=True, verified_at=now)
        assert applied is False

        writer.expire_all()
        current = writer.get(OTPToken, otp.id)
        assert current.attempts == 1
        assert current.is_used is False
    finally:
        writer.close()
        reader.close()


def test_static_code_setting_overrides_random_draw(db_session, unique_email, monkeypatch):
    service = OTPService(db_session)
    monkeypatch.setattr(service.settings, "OTP_STATIC_CODE", "246810")

    otp = service.issue(email=unique_email(), purpose=OTPPurpose.EMAIL_VERIFICATION)

    assert otp.code == "246810"


def test_cleanup_removes_only_expired_tokens_and_is_idempotent(db_session, unique_email):
    email = unique_email()
    now = datetime.now(tz=timezone.utc)
    expired = OTPService(db_session, clock=lambda: now - timedelta(minutes=30)).issue(
        email=email, purpose=OTPPurpose.EMAIL_VERIFICATION
    )
    live = OTPService(db_session, clock=lambda: now).issue(email=email, purpose=OTPPurpose.EMAIL_VERIFICATION)

    service = OTPService(db_session)
    assert service.cleanup_expired() is True
    after_first = {token.id for token in _tokens_for(db_session, email)}
    assert service.cleanup_expired() is True
    after_second = {token.id for token in _tokens_for(db_session, email)}

    assert expired.id not in after_first
    assert live.id in after_first
    assert after_first == after_second


def test_get_active_token_skips_used_and_expired(db_session, unique_email):
    email = unique_email()
    service = OTPService(db_session)
    otp = service.issue(email=email, purpose=OTPPurpose.PASSWORD_RESET)

    assert service.get_active_token(email=email, purpose=OTPPurpose.PASSWORD_RESET).id == otp.id

    service.verify(email=email, code=otp.code, purpose=OTPPurpose.PASSWORD_RESET)
    assert service.get_active_token(email=email, purpose=OTPPurpose.PASSWORD_RESET) is None
