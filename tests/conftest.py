import os
import sys
import uuid
from pathlib import Path

import pytest
import anyio
import httpx

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite:///" + str(BASE_DIR / "test.db"))
os.environ.setdefault("OTP_EXPIRATION_MINUTES", "10")
os.environ.setdefault("OTP_MAX_ATTEMPTS", "3")
os.environ.setdefault("OTP_RATE_LIMIT_PER_HOUR", "1000")
os.environ.setdefault("EMAIL_DRY_RUN", "true")
os.environ.setdefault("PASSWORD_HASHING_ROUNDS", "4")
os.environ.setdefault("APP_BASE_URL", "http://localhost:3000")
os.environ.setdefault("ALLOWED_EMAIL_DOMAIN", "ncit.edu.np")

from app.core.config import get_settings
from app.core import db as db_module
from app.core.dependencies import get_db
from app.models import Base, Profile
from app.main import app

get_settings.cache_clear()

db_module._engine = None
db_module._SessionLocal = None
_db_path = BASE_DIR / "test.db"


@pytest.fixture(scope="session")
def engine():
    if _db_path.exists():
        _db_path.unlink()
    engine = db_module.build_engine(get_settings().DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if _db_path.exists():
        _db_path.unlink()


@pytest.fixture(scope="session")
def session_factory(engine):
    return db_module.build_session_factory(engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def unique_email():
    def _make(prefix: str = "student") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10]}@ncit.edu.np"

    return _make


@pytest.fixture()
def make_profile(session_factory):
    def _make(email: str, full_name: str | None = "Test Student") -> Profile:
        session = session_factory()
        try:
            profile = Profile(email=email.lower(), full_name=full_name)
            session.add(profile)
            session.commit()
            session.refresh(profile)
            return profile
        finally:
            session.close()

    return _make


@pytest.fixture()
def client(session_factory):
    def _get_test_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db

    class _SyncASGIClient:
        def __init__(self, fastapi_app):
            self._client = httpx.AsyncClient(
                transport=httpx.ASGITransport(app=fastapi_app),
                base_url="http://testserver",
            )

        def request(self, method: str, url: str, **kwargs):
            async def _do_request():
                return await self._client.request(method, url, **kwargs)

            return anyio.run(_do_request)

        def get(self, url: str, **kwargs):
            return self.request("GET", url, **kwargs)

        def post(self, url: str, **kwargs):
            return self.request("POST", url, **kwargs)

        def close(self):
            async def _do_close():
                await self._client.aclose()

            anyio.run(_do_close)

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            self.close()

    with _SyncASGIClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
