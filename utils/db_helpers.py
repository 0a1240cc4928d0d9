from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from extensions import db


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """Run one engine operation as a single transaction.

    Commits when the block finishes; any exception rolls the whole session back
    and propagates unchanged, so a failed operation never half-writes.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def compare_and_set(stmt) -> bool:
    """Execute a guarded UPDATE; True when exactly one row matched its WHERE clause."""
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1
