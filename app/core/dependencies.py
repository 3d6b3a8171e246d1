from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.db import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def request_meta(request: Request) -> dict[str, str | None]:
    return {
        "ip": getattr(request.state, "ip", None),
        "user_agent": getattr(request.state, "user_agent", None),
    }
