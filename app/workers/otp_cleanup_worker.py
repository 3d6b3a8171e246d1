from __future__ import annotations

import logging
import time
import uuid
from contextlib import AbstractContextManager
from typing import Callable

from redis import Redis
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.db import session_scope
from app.core.locking import get_redis_client, make_lock
from app.services import OTPService

logger = logging.getLogger("app.otp_cleanup_worker")


class OTPCleanupWorker:
    """Periodically delete expired OTP tokens.

    Only one replica sweeps at a time; the others skip the pass when the lock is held.
    """

    LOCK_NAME = "otp:cleanup"
    LOCK_TTL_SECONDS = 60
    LOCK_WAIT_SECONDS = 0.2

    def __init__(
        self,
        *,
        worker_id: str | None = None,
        interval_seconds: int | None = None,
        redis_client: Redis | None = None,
        session_factory: Callable[[], AbstractContextManager[Session]] = session_scope,
    ):
        settings = get_settings()
        self.worker_id = worker_id or f"otp-cleanup-{uuid.uuid4().hex[:8]}"
        self.interval_seconds = interval_seconds or settings.OTP_CLEANUP_INTERVAL_SECONDS
        self._redis_client = redis_client if redis_client is not None else get_redis_client()
        self._session_factory = session_factory
        self._metrics: dict[str, int] = {"passes": 0, "swept": 0, "skipped": 0, "failed": 0}

    @property
    def metrics(self) -> dict[str, int]:
        return dict(self._metrics)

    def run_forever(self) -> None:
        logger.info("otp_cleanup_worker_started worker_id=%s interval=%ss", self.worker_id, self.interval_seconds)
        while True:
            self.run_once()
            time.sleep(self.interval_seconds)

    def run_once(self) -> bool:
        """Run a single sweep. Returns False when the pass was skipped or failed."""

        self._metrics["passes"] += 1
        lock = make_lock(
            self.LOCK_NAME,
            redis_client=self._redis_client,
            ttl_seconds=self.LOCK_TTL_SECONDS,
            wait_timeout=self.LOCK_WAIT_SECONDS,
            log=logger,
        )
        with lock.hold() as acquired:
            if not acquired:
                self._metrics["skipped"] += 1
                logger.info("otp_cleanup_skipped worker_id=%s reason=lock_busy", self.worker_id)
                return False
            with self._session_factory() as session:
                ok = OTPService(session).cleanup_expired()

        if ok:
            self._metrics["swept"] += 1
        else:
            self._metrics["failed"] += 1
            logger.warning("otp_cleanup_failed worker_id=%s", self.worker_id)
        return ok
