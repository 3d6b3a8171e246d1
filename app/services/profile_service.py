from datetime import datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.security import normalize_email
from app.models import Profile

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, email: str) -> Profile | None:
        return self.db.execute(
            select(Profile).where(Profile.email == normalize_email(email))
        ).scalar_one_or_none()

    def get(self, profile_id: str) -> Profile | None:
        return self.db.get(Profile, profile_id)

    def mark_email_verified(self, *, user_id: str | None, email: str) -> Profile | None:
        """Set the verification flag on the owning profile, falling back to an email lookup."""

        profile = self.get(user_id) if user_id else None
        if profile is None:
            profile = self.get_by_email(email)
        if profile is None:
            logger.info("No profile to mark verified | email=%s", normalize_email(email))
            return None

        profile.email_verified = True
        profile.email_verified_at = datetime.now(tz=timezone.utc)
        self.db.commit()
        return profile
