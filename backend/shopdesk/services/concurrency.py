# Overview: Transaction, locking and retry helpers shared by the engines.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentUpdateError, ShopdeskError, StoreError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch the conflict on SQLite.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run the enclosed block as one unit of work and commit it.

    Any failure rolls back everything done inside the block: a balance or
    session change never survives without its log row. SQLAlchemy failures
    are translated to StoreError so callers only deal with our taxonomy.
    """
    try:
        yield db.session
        db.session.commit()
    except ShopdeskError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError() from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError() from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreError() from exc


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an engine operation, retrying only on StoreError.

    Domain errors (cooldown, incomplete tasks, ...) propagate immediately.
    The engines themselves never retry; this is for the calling controller.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StoreError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after store error (attempt %s/%s): %s", attempt + 1, attempts, exc.code
            )
            time.sleep(backoff_base * (2 ** attempt))
