"""
Numérotation lisible, par code et par année civile : PR-2026-000001.

La ligne number_series (code, année) est verrouillée FOR UPDATE pendant
l'allocation, dans la transaction de l'insert qui consomme le numéro :
deux allocations concurrentes ne peuvent pas lire le même compteur.

Première allocation de l'année : la ligne est créée par un
INSERT ... ON CONFLICT DO NOTHING puis relue sous verrou ; si une autre
transaction l'a créée entre-temps, on reprend simplement son compteur.
"""
from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.db.models.models_v1 import NumberSeries

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _lock_series(db: Session, code: str, year: int) -> NumberSeries | None:
    return (
        db.execute(
            select(NumberSeries)
            .where(NumberSeries.code == code)
            .where(NumberSeries.year == year)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )


def _ensure_series(db: Session, code: str, year: int) -> None:
    dialect = db.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Number series not supported on dialect {dialect!r}")
    db.execute(
        insert(NumberSeries)
        .values(code=code, year=year, next_number=1)
        .on_conflict_do_nothing(index_elements=["code", "year"])
    )


def allocate_number(db: Session, code: str, *, today: date | None = None) -> str:
    year = (today or date.today()).year
    width = get_settings().NUMBER_WIDTH

    series = _lock_series(db, code, year)
    if series is None:
        _ensure_series(db, code, year)
        series = _lock_series(db, code, year)

    current = series.next_number
    series.next_number = current + 1
    db.flush()

    return f"{code}-{year}-{str(current).zfill(width)}"
