"""
Advisory run lock backed by the run_locks table.

A lock is a lease: a row keyed by lock name with an expiry time. A lease
whose expiry has passed is treated as abandoned and may be reclaimed, so a
crashed run never blocks later runs for longer than the lease duration.
"""

import logging
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from networth.data.store import RunLockRow


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored by SQLite DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def acquire_lock(
    engine: Engine,
    name: str,
    owner: str,
    timeout_seconds: int,
    now: datetime,
) -> bool:
    """
    Try to take the lease for `name`.

    Expired leases are removed first. Returns False if another owner holds
    a live lease.
    """
    with Session(engine) as session, session.begin():
        reclaimed = session.execute(
            delete(RunLockRow).where(
                RunLockRow.name == name,
                RunLockRow.expires_at <= now,
            )
        ).rowcount
    if reclaimed:
        logger.warning("Reclaimed expired lock %r", name)

    try:
        with Session(engine) as session, session.begin():
            session.add(
                RunLockRow(
                    name=name,
                    owner=owner,
                    acquired_at=now,
                    expires_at=now + timedelta(seconds=timeout_seconds),
                )
            )
    except IntegrityError:
        return False

    logger.debug("Acquired lock %r as %s", name, owner)
    return True


def release_lock(engine: Engine, name: str, owner: str) -> None:
    """Drop the lease, but only if `owner` still holds it."""
    with Session(engine) as session, session.begin():
        session.execute(
            delete(RunLockRow).where(
                RunLockRow.name == name,
                RunLockRow.owner == owner,
            )
        )
    logger.debug("Released lock %r", name)


def lock_holder(engine: Engine, name: str) -> Optional[str]:
    """Current owner of the lease, or None."""
    with Session(engine) as session:
        return session.scalar(select(RunLockRow.owner).where(RunLockRow.name == name))


@contextmanager
def advisory_lock(
    engine: Engine,
    name: str,
    timeout_seconds: int,
    owner: Optional[str] = None,
    clock: Clock = utcnow,
) -> Iterator[bool]:
    """
    Hold the named lease for the duration of the block.

    Yields True when the lease was acquired and False when another run holds
    it; the caller decides what to do in the latter case. An acquired lease
    is always released on exit, including when the block raises.

    Example:
        with advisory_lock(engine, "portfolio-recompute", 300) as acquired:
            if not acquired:
                return
            ...
    """
    owner = owner or default_owner()
    acquired = acquire_lock(engine, name, owner, timeout_seconds, clock())
    try:
        yield acquired
    finally:
        if acquired:
            release_lock(engine, name, owner)
