from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Une opération métier = une transaction.

    Commit si le bloc se termine normalement, rollback complet sur TOUTE
    exception (erreur métier, contrainte, base indisponible), puis re-raise.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
