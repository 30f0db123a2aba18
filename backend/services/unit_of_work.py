from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.services.errors import ConcurrencyConflict, ProcurementError, StorageFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Une opération métier = une transaction.

    Commit si le bloc se termine, rollback sinon : aucune écriture
    partielle n'est jamais visible.
    """
    try:
        yield db
        db.commit()
    except ProcurementError:
        db.rollback()
        raise
    except StaleDataError as e:
        db.rollback()
        raise ConcurrencyConflict("Record was modified by a concurrent transaction") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Transaction aborted")
        raise StorageFailure("Storage failure, transaction rolled back") from e
    except Exception:
        db.rollback()
        raise
