# Overview: Per-document write discipline; row locks plus retry of whole load/recompute/save units.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to the document about to be mutated.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns (optimistic locking) catch concurrent writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one document write unit, retrying on concurrency failures.

    func must be self-contained: load (locked), recompute, commit. On
    OperationalError (locks, deadlocks) or StaleDataError (version_id
    mismatch) the session is rolled back and func runs again from scratch.

    Any other exception rolls the session back and propagates unchanged,
    so a rejected operation never leaves half-applied state behind.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent update detected (attempt %d/%d): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
