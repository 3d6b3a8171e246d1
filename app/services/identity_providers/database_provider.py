from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import security
from app.models import Profile

from ..exceptions import IdentityProviderError
from .base import BaseIdentityProvider

logger = logging.getLogger(__name__)


class DatabaseIdentityProvider(BaseIdentityProvider):
    """Stores a bcrypt password hash on the profile row."""

    name = "database"

    def __init__(self, db: Session):
        self.db = db

    def update_password(self, *, user_id: str, new_password: str) -> None:
        try:
            profile = self.db.get(Profile, user_id)
            if profile is None:
                raise IdentityProviderError("Account not found")
            profile.password_hash = security.create_password_hash(new_password)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Password update failed | user_id=%s", user_id)
            raise IdentityProviderError("Password update failed") from exc
        logger.info("Password updated | user_id=%s", user_id)
