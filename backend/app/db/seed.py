from __future__ import annotations

from sqlalchemy import select, text

from backend.app.core.config import get_settings
from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import User
from backend.app.db.models.core_types import Role


def seed_users(db) -> None:
    """Utilisateur SYSTEM (sweeps cron) + ADMIN. Idempotent."""
    settings = get_settings()

    system = db.get(User, settings.SYSTEM_USER_ID)
    if not system:
        db.add(User(id=settings.SYSTEM_USER_ID, name=settings.SYSTEM_USER_NAME, role=Role.system, active=True))
        db.flush()
        if db.get_bind().dialect.name == "postgresql":
            # id explicite : recaler la séquence
            db.execute(text("SELECT setval(pg_get_serial_sequence('users', 'id'), (SELECT MAX(id) FROM users))"))

    admin = db.scalar(select(User).where(User.name == "ADMIN"))
    if not admin:
        db.add(User(name="ADMIN", role=Role.admin, active=True))

    db.commit()


def run_seed():
    db = SessionLocal()
    try:
        seed_users(db)
        print("SEED OK: users=SYSTEM,ADMIN")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
