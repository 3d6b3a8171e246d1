from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models import AuthAction, AuthLog


def log_auth_event(
    *,
    db: Session,
    action: AuthAction,
    actor_id: str | None = None,
    email: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuthLog:
    log = AuthLog(
        action=action,
        actor_id=actor_id,
        email=email,
        ip=ip,
        user_agent=(user_agent or "")[:255] or None,
        meta=meta,
    )
    db.add(log)
    db.flush()
    return log


REQUEST_ACTIONS = (AuthAction.OTP_REQUEST, AuthAction.OTP_RESEND, AuthAction.PASSWORD_RESET_REQUEST)


def count_recent_requests(
    *,
    db: Session,
    since: datetime,
    email: str | None = None,
    ip: str | None = None,
) -> int:
    """Code requests logged since ``since``, whether or not a code was issued."""

    query = select(func.count(AuthLog.id)).where(
        AuthLog.action.in_(REQUEST_ACTIONS),
        AuthLog.created_at >= since,
    )
    if email is not None:
        query = query.where(AuthLog.email == email)
    if ip is not None:
        query = query.where(AuthLog.ip == ip)
    return db.execute(query).scalar_one()
