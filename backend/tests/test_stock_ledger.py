import random

import pytest
from sqlalchemy import func, select

from backend.app.core.exceptions import InsufficientStock, LedgerIntegrityError, ValidationError
from backend.app.db.models.models_v1 import Item, StockMovement
from backend.app.db.models.core_types import MovementDirection, ReferenceType
from backend.services import inventory
from backend.services.inventory import MovementReference
from backend.services.rules import stock_status

MANUAL = MovementReference(ReferenceType.manual, number="T-1")


def _movement_count(db, item_id):
    return db.scalar(select(func.count()).select_from(StockMovement).where(StockMovement.item_id == item_id))


def test_in_then_out_updates_cache_and_ledger(db_session, admin, make_item):
    """
    GIVEN un article à 0
    WHEN IN 10 puis OUT 4
    THEN stock = 6, ledger = 6, chaînage previous/new correct
    """
    item = make_item(on_hand=0)

    assert inventory.record_movement(db_session, item.id, MovementDirection.inbound, 10, MANUAL, admin) == 10
    assert inventory.record_movement(db_session, item.id, "OUT", 4, MANUAL, admin) == 6

    assert inventory.current_on_hand(db_session, item.id) == 6
    assert inventory.ledger_balance(db_session, item.id) == 6

    history = list(reversed(inventory.movement_history(db_session, item.id)))
    assert [(m.previous_quantity, m.new_quantity) for m in history] == [(0, 10), (10, 6)]
    assert history[1].created_by == admin.user_id

    check = inventory.verify_ledger(db_session, item.id)
    assert check.ok
    assert check.movements == 2


def test_out_beyond_stock_is_rejected_without_any_write(db_session, admin, make_item):
    item = make_item(on_hand=5)
    before = _movement_count(db_session, item.id)

    with pytest.raises(InsufficientStock) as exc:
        inventory.record_movement(db_session, item.id, MovementDirection.outbound, 6, MANUAL, admin)

    assert exc.value.available == 5
    assert exc.value.required == 6
    assert exc.value.to_dict()["code"] == "INSUFFICIENT_STOCK"
    assert inventory.current_on_hand(db_session, item.id) == 5
    assert _movement_count(db_session, item.id) == before


@pytest.mark.parametrize("quantity", [0, -3, None])
def test_non_positive_quantity_is_a_validation_error(db_session, admin, make_item, quantity):
    item = make_item(on_hand=5)

    with pytest.raises(ValidationError) as exc:
        inventory.record_movement(db_session, item.id, MovementDirection.inbound, quantity, MANUAL, admin)

    assert exc.value.field == "quantity"
    assert inventory.current_on_hand(db_session, item.id) == 5


def test_opening_stock_is_recorded_as_a_movement(db_session, make_item):
    item = make_item(on_hand=12)

    history = inventory.movement_history(db_session, item.id)
    assert len(history) == 1
    assert history[0].reference_type == ReferenceType.opening
    assert history[0].direction == MovementDirection.inbound
    assert item.qty_on_hand == 12


def test_duplicate_sku_is_rejected(db_session, admin, make_item):
    item = make_item()

    with pytest.raises(ValidationError):
        inventory.create_item(db_session, sku=item.sku, name="Other", actor=admin)


def test_adjust_stock_writes_offsetting_movement(db_session, admin, make_item):
    item = make_item(on_hand=10)

    assert inventory.adjust_stock(db_session, item.id, 3, admin, "Stock take") == 3
    last = inventory.movement_history(db_session, item.id, limit=1)[0]
    assert last.direction == MovementDirection.outbound
    assert last.quantity == 7
    assert last.reference_type == ReferenceType.adjustment

    # écart nul : aucun mouvement
    before = _movement_count(db_session, item.id)
    assert inventory.adjust_stock(db_session, item.id, 3, admin, "Recount") == 3
    assert _movement_count(db_session, item.id) == before

    with pytest.raises(ValidationError):
        inventory.adjust_stock(db_session, item.id, 5, admin, "   ")


def test_direct_cache_write_is_blocked(db_session, make_item):
    item = make_item(on_hand=4)

    item.qty_on_hand = 99
    with pytest.raises(LedgerIntegrityError):
        db_session.commit()
    db_session.rollback()

    assert inventory.current_on_hand(db_session, item.id) == 4


def test_new_item_must_start_at_zero(db_session):
    db_session.add(Item(sku="RAW-1", name="Raw insert", qty_on_hand=5))

    with pytest.raises(LedgerIntegrityError):
        db_session.commit()
    db_session.rollback()

    assert db_session.scalar(select(Item).where(Item.sku == "RAW-1")) is None


def test_movements_are_append_only(db_session, make_item):
    item = make_item(on_hand=4)
    movement = inventory.movement_history(db_session, item.id)[0]

    movement.quantity = 1
    with pytest.raises(LedgerIntegrityError):
        db_session.commit()
    db_session.rollback()

    movement = inventory.movement_history(db_session, item.id)[0]
    db_session.delete(movement)
    with pytest.raises(LedgerIntegrityError):
        db_session.commit()
    db_session.rollback()

    assert inventory.ledger_balance(db_session, item.id) == 4


def test_random_sequence_never_goes_negative_and_stays_reconstructible(db_session, admin, make_item):
    """
    GIVEN une suite pseudo-aléatoire de IN / OUT
    THEN après chaque mouvement : stock >= 0 et stock == somme signée du ledger
    """
    item = make_item(on_hand=0)
    rng = random.Random(42)

    for _ in range(40):
        direction = rng.choice([MovementDirection.inbound, MovementDirection.outbound])
        qty = rng.randint(1, 9)
        try:
            inventory.record_movement(db_session, item.id, direction, qty, MANUAL, admin)
        except InsufficientStock:
            pass

        on_hand = inventory.current_on_hand(db_session, item.id)
        assert on_hand >= 0
        assert on_hand == inventory.ledger_balance(db_session, item.id)

    with pytest.raises(InsufficientStock):
        inventory.record_movement(
            db_session, item.id, MovementDirection.outbound, inventory.current_on_hand(db_session, item.id) + 1, MANUAL, admin
        )
    assert inventory.verify_ledger(db_session, item.id).ok


@pytest.mark.parametrize(
    "on_hand, reorder_level, expected",
    [
        (0, 10, "out_of_stock"),
        (10, 10, "low_stock"),
        (15, 10, "normal"),
        (16, 10, "healthy"),
    ],
)
def test_stock_status(on_hand, reorder_level, expected):
    assert stock_status(on_hand, reorder_level) == expected
