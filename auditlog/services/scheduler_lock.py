"""DB-backed lease deciding which runner hosts the maintenance jobs.

Unrelated to the archiving flag: this lease only stops two runners from
scheduling pruning and buffer draining at the same time.
"""
from __future__ import annotations

import os
import socket
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from auditlog.models.scheduler_lock import SchedulerLock

LOCK_NAME = "auditlog-maintenance"
LOCK_TTL_SECONDS = 300


def _owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SchedulerLease:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        name: str = LOCK_NAME,
        *,
        ttl_seconds: int = LOCK_TTL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self.name = name
        self.ttl_seconds = ttl_seconds

    def _locked_row(self, session: Session) -> SchedulerLock | None:
        return session.execute(
            select(SchedulerLock).where(SchedulerLock.name == self.name).with_for_update()
        ).scalar_one_or_none()

    def try_acquire(self) -> bool:
        """Take the lease when free, expired or already ours."""

        owner = _owner_id()
        now = datetime.now(timezone.utc)
        expires = now + timedelta(seconds=self.ttl_seconds)
        session = self._session_factory()
        try:
            with session.begin():
                lock = self._locked_row(session)
                if lock is None:
                    session.add(SchedulerLock(name=self.name, owner=owner, acquired_at=now, expires_at=expires))
                    return True

                expires_at = _aware(lock.expires_at)
                if expires_at is None or expires_at <= now:
                    lock.owner = owner
                    lock.acquired_at = now
                    lock.expires_at = expires
                    return True
                if lock.owner == owner:
                    lock.expires_at = expires
                    return True
                return False
        except IntegrityError:
            # Another runner inserted the row first.
            session.rollback()
            return False
        finally:
            session.close()

    def refresh(self) -> None:
        """Extend the lease when this runner owns it."""

        expires = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        with self._session_factory() as session, session.begin():
            lock = self._locked_row(session)
            if lock is not None and lock.owner == _owner_id():
                lock.expires_at = expires

    def release(self) -> None:
        with self._session_factory() as session, session.begin():
            lock = self._locked_row(session)
            if lock is not None and lock.owner == _owner_id():
                session.delete(lock)

    def describe(self) -> dict[str, object]:
        """Return a lightweight description of the lease for /health."""

        with self._session_factory() as session:
            lock = session.execute(
                select(SchedulerLock).where(SchedulerLock.name == self.name)
            ).scalar_one_or_none()
            if lock is None:
                return {"status": "none", "owner": None, "present": False}

            now = datetime.now(timezone.utc)
            acquired_at = _aware(lock.acquired_at)
            expires_at = _aware(lock.expires_at)
            expires_in = (expires_at - now).total_seconds() if expires_at else None
            return {
                "status": "owned_by_self" if lock.owner == _owner_id() else "owned_by_other",
                "owner": lock.owner,
                "present": True,
                "age_seconds": (now - acquired_at).total_seconds() if acquired_at else None,
                "expires_in_seconds": expires_in,
                "stale": expires_in is not None and expires_in < -60,
            }


__all__ = ["LOCK_NAME", "LOCK_TTL_SECONDS", "SchedulerLease"]
