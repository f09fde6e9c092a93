"""
Courses réelles entre transactions : PostgreSQL uniquement (FOR UPDATE).

    TEST_DATABASE_URL=postgresql+psycopg://... pytest backend/tests/test_concurrency_pg.py
"""
import os
import threading

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from backend.app.core.exceptions import DuplicateRequisition, InsufficientStock
from backend.app.db.base import Base
from backend.app.db.models.models_v1 import PurchaseRequisition, StockRequirement, User
from backend.app.db.models.core_types import ACTIVE_REQUISITION_STATUSES, MovementDirection, ReferenceType
from backend.app.db.seed import seed_users
from backend.services import inventory, requisitions, sales
from backend.services.actor import Actor
from backend.services.inventory import MovementReference

PG_URL = os.getenv("TEST_DATABASE_URL", "")

pytestmark = pytest.mark.skipif(not PG_URL.startswith("postgresql"), reason="needs TEST_DATABASE_URL on PostgreSQL")


@pytest.fixture
def pg_sessions():
    engine = create_engine(PG_URL, pool_size=10)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    with factory() as db:
        seed_users(db)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _admin(factory):
    with factory() as db:
        user = db.scalar(select(User).where(User.name == "ADMIN"))
        return Actor.human(user.id, user.name)


def _race(factory, n, work):
    """Lance `work(db)` dans n threads synchronisés ; retourne résultats et erreurs."""
    barrier = threading.Barrier(n)
    results, errors = [], []
    lock = threading.Lock()

    def runner():
        with factory() as db:
            barrier.wait()
            try:
                out = work(db)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            else:
                with lock:
                    results.append(out)

    threads = [threading.Thread(target=runner) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors


def test_concurrent_generation_creates_one_requisition(pg_sessions):
    admin = _admin(pg_sessions)
    with pg_sessions() as db:
        item = inventory.create_item(db, sku="RACE-1", name="Race item", actor=admin, reorder_level=10)
        order = sales.create_sales_order(db, "Race customer", [sales.OrderLine(item.id, 25)], admin)
        requirement_id = db.scalar(select(StockRequirement.id).where(StockRequirement.sales_order_id == order.id))
        item_id = item.id

    results, errors = _race(
        pg_sessions, 6, lambda db: requisitions.generate_from_shortage(db, requirement_id, admin).pr_number
    )

    assert len(results) == 1
    assert len(errors) == 5
    assert all(isinstance(e, DuplicateRequisition) for e in errors)
    with pg_sessions() as db:
        active = db.scalar(
            select(func.count())
            .select_from(PurchaseRequisition)
            .where(PurchaseRequisition.item_id == item_id)
            .where(PurchaseRequisition.status.in_(ACTIVE_REQUISITION_STATUSES))
        )
    assert active == 1


def test_concurrent_issues_never_drive_stock_negative(pg_sessions):
    admin = _admin(pg_sessions)
    with pg_sessions() as db:
        item_id = inventory.create_item(
            db, sku="RACE-2", name="Race stock", actor=admin, opening_quantity=10
        ).id

    ref = MovementReference(ReferenceType.manual, number="RACE")
    results, errors = _race(
        pg_sessions, 8, lambda db: inventory.record_movement(db, item_id, MovementDirection.outbound, 3, ref, admin)
    )

    assert len(results) == 3
    assert all(isinstance(e, InsufficientStock) for e in errors)
    with pg_sessions() as db:
        assert inventory.current_on_hand(db, item_id) == 1
        assert inventory.verify_ledger(db, item_id).ok
