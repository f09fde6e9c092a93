import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.db.base import Base
from backend.app.db.models import models_v1  # noqa: F401  (tables + guards)
from backend.app.db.models.models_v1 import User
from backend.app.db.seed import seed_users
from backend.services import inventory, notifications, procurement, sales
from backend.services.actor import Actor


class RecordingNotifier:
    """Transport de test : garde les événements livrés."""

    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]

    def of_kind(self, kind):
        return [e for e in self.events if e.kind == kind]


@pytest.fixture(scope="function")
def engine():
    """
    SQLite en mémoire, une base par test.

    StaticPool : une seule connexion partagée (la base mémoire vit avec elle),
    utilisable depuis le threadpool du TestClient.
    """
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    """Session isolée par test, utilisateurs SYSTEM + ADMIN déjà présents."""
    session = session_factory()
    seed_users(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    recorder = RecordingNotifier()
    previous = notifications.set_notifier(recorder)
    try:
        yield recorder
    finally:
        notifications.set_notifier(previous)


@pytest.fixture
def admin(db_session) -> Actor:
    user = db_session.scalar(select(User).where(User.name == "ADMIN"))
    return Actor.human(user.id, user.name)


@pytest.fixture
def system_actor() -> Actor:
    return Actor.system()


@pytest.fixture
def make_item(db_session, admin):
    counter = {"n": 0}

    def _make(on_hand=0, reorder_level=10, unit_price=5, name=None):
        counter["n"] += 1
        sku = f"SKU-{counter['n']:03d}"
        return inventory.create_item(
            db_session,
            sku=sku,
            name=name or f"Item {sku}",
            actor=admin,
            unit_price=unit_price,
            reorder_level=reorder_level,
            opening_quantity=on_hand,
        )

    return _make


@pytest.fixture
def make_order(db_session, admin):
    def _make(*lines, customer="ACME Solar", installation_date=None):
        return sales.create_sales_order(
            db_session,
            customer,
            [sales.OrderLine(item.id, qty) for item, qty in lines],
            admin,
            installation_date=installation_date,
        )

    return _make


@pytest.fixture
def supplier(db_session, admin):
    return procurement.create_supplier(db_session, "Pacific Supply", admin, lead_time_days=10)
