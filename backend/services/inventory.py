from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from backend.app.core.exceptions import (
    InsufficientStock,
    NotFound,
    ValidationError,
)
from backend.app.db.models.models_v1 import Item, StockMovement
from backend.app.db.models.core_types import ItemStatus, MovementDirection, ReferenceType
from backend.services import audit
from backend.services.actor import Actor
from backend.services.rules import require_positive, require_text
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MovementReference:
    type: ReferenceType
    number: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class LedgerCheck:
    item_id: int
    cached: int
    derived: int
    movements: int
    chain_ok: bool

    @property
    def ok(self) -> bool:
        return self.chain_ok and self.cached == self.derived


def lock_item(db: Session, item_id: int) -> Item:
    """
    Verrou exclusif (FOR UPDATE) sur la ligne article, relue depuis la base.

    C'est la primitive de sérialisation du noyau : mouvements de stock et
    création de réquisitions d'un même article passent tous par ce verrou.
    """
    item = (
        db.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if item is None:
        raise NotFound("item", item_id)
    return item


def get_item(db: Session, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("item", item_id)
    return item


def apply_movement(
    db: Session,
    item_id: int,
    direction: MovementDirection | str,
    quantity: int,
    reference: MovementReference,
    actor: Actor,
) -> int:
    """
    Seule façon légale de modifier le stock d'un article.

    Écrit UN mouvement immuable (snapshot avant/après) et met à jour le cache
    items.qty_on_hand dans le même flush. Un OUT qui rendrait le stock négatif
    lève InsufficientStock sans rien écrire.

    Ne commit pas : l'appelant fournit l'unité de travail.
    Retourne le nouveau stock.
    """
    require_positive(quantity, "quantity")
    try:
        direction = MovementDirection(direction)
    except ValueError:
        raise ValidationError(f"Invalid direction: {direction}", field="direction") from None

    item = lock_item(db, item_id)
    previous = item.qty_on_hand

    if direction == MovementDirection.outbound:
        if previous < quantity:
            raise InsufficientStock(item.id, previous, quantity)
        new = previous - quantity
    else:
        new = previous + quantity

    db.add(
        StockMovement(
            item_id=item.id,
            direction=direction,
            quantity=quantity,
            reference_type=reference.type,
            reference_number=reference.number,
            notes=reference.notes,
            previous_quantity=previous,
            new_quantity=new,
            created_by=actor.user_id,
        )
    )
    item.qty_on_hand = new
    db.flush()

    logger.info(
        "stock_movement_applied",
        extra={
            "item_id": item.id,
            "direction": direction.value,
            "quantity": quantity,
            "previous_quantity": previous,
            "new_quantity": new,
            "reference": reference.number,
        },
    )
    return new


def record_movement(
    db: Session,
    item_id: int,
    direction: MovementDirection | str,
    quantity: int,
    reference: MovementReference,
    actor: Actor,
) -> int:
    """apply_movement dans sa propre unité de travail, avec audit."""
    with unit_of_work(db):
        new = apply_movement(db, item_id, direction, quantity, reference, actor)
        audit.record(
            db,
            actor,
            f"Stock {MovementDirection(direction).value}: item #{item_id} x {quantity} -> {new}"
            f" ({reference.type.value} {reference.number or ''})".rstrip(),
            "inventory",
            "stock_movement",
        )
    return new


def adjust_stock(
    db: Session,
    item_id: int,
    counted_quantity: int,
    actor: Actor,
    reason: str,
) -> int:
    """
    Correction d'inventaire : un mouvement compensatoire (IN ou OUT) amène
    le stock au compté. Aucun mouvement si l'écart est nul.
    """
    if counted_quantity is None or counted_quantity < 0:
        raise ValidationError("counted_quantity must be >= 0", field="counted_quantity")
    reason = require_text(reason, "reason")

    with unit_of_work(db):
        item = lock_item(db, item_id)
        delta = counted_quantity - item.qty_on_hand
        if delta == 0:
            return item.qty_on_hand

        direction = MovementDirection.inbound if delta > 0 else MovementDirection.outbound
        new = apply_movement(
            db,
            item_id,
            direction,
            abs(delta),
            MovementReference(ReferenceType.adjustment, notes=reason),
            actor,
        )
        audit.record(
            db,
            actor,
            f"Stock adjustment: {item.name} counted {counted_quantity} ({delta:+d}) - {reason}",
            "inventory",
            "adjustment",
        )
    return new


def create_item(
    db: Session,
    *,
    sku: str,
    name: str,
    actor: Actor,
    uom: str = "unit",
    unit_price: Decimal | float | int = 0,
    reorder_level: int = 0,
    opening_quantity: int = 0,
) -> Item:
    """Crée l'article à 0 ; le stock initial passe par un mouvement OPENING."""
    sku = require_text(sku, "sku")
    name = require_text(name, "name")
    if reorder_level < 0:
        raise ValidationError("reorder_level must be >= 0", field="reorder_level")
    if opening_quantity < 0:
        raise ValidationError("opening_quantity must be >= 0", field="opening_quantity")
    if Decimal(str(unit_price)) < 0:
        raise ValidationError("unit_price must be >= 0", field="unit_price")

    with unit_of_work(db):
        exists = db.execute(select(Item.id).where(Item.sku == sku)).scalar_one_or_none()
        if exists:
            raise ValidationError("SKU already exists", field="sku")

        item = Item(
            sku=sku,
            name=name,
            uom=uom,
            unit_price=Decimal(str(unit_price)),
            reorder_level=reorder_level,
            status=ItemStatus.active,
        )
        db.add(item)
        db.flush()

        if opening_quantity:
            apply_movement(
                db,
                item.id,
                MovementDirection.inbound,
                opening_quantity,
                MovementReference(ReferenceType.opening, number=sku, notes="Opening stock"),
                actor,
            )
        audit.record(db, actor, f"Created item {sku} - {name}", "inventory", "create_item")

    return item


# ---------- LECTURE / CONTRÔLE ----------
def current_on_hand(db: Session, item_id: int) -> int:
    qty = db.execute(select(Item.qty_on_hand).where(Item.id == item_id)).scalar_one_or_none()
    if qty is None:
        raise NotFound("item", item_id)
    return int(qty)


def ledger_balance(db: Session, item_id: int) -> int:
    """Somme signée des mouvements commités : la vérité du stock."""
    signed = case(
        (StockMovement.direction == MovementDirection.outbound, -StockMovement.quantity),
        else_=StockMovement.quantity,
    )
    total = db.execute(
        select(func.coalesce(func.sum(signed), 0)).where(StockMovement.item_id == item_id)
    ).scalar_one()
    return int(total)


def movement_history(db: Session, item_id: int, limit: int = 50) -> list[StockMovement]:
    return list(
        db.execute(
            select(StockMovement)
            .where(StockMovement.item_id == item_id)
            .order_by(StockMovement.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def verify_ledger(db: Session, item_id: int) -> LedgerCheck:
    """
    Reconstruit le stock depuis le ledger et le compare au cache.

    Vérifie aussi le chaînage : chaque mouvement part du new_quantity du
    précédent et new = previous ± quantity.
    """
    item = get_item(db, item_id)
    movements = (
        db.execute(
            select(StockMovement)
            .where(StockMovement.item_id == item_id)
            .order_by(StockMovement.id.asc())
        )
        .scalars()
        .all()
    )

    running = 0
    chain_ok = True
    for mv in movements:
        if mv.previous_quantity != running:
            chain_ok = False
        if mv.new_quantity != mv.previous_quantity + mv.signed_quantity:
            chain_ok = False
        running += mv.signed_quantity
        if running < 0:
            chain_ok = False

    check = LedgerCheck(
        item_id=item.id,
        cached=item.qty_on_hand,
        derived=running,
        movements=len(movements),
        chain_ok=chain_ok,
    )
    if not check.ok:
        logger.warning(
            "ledger_mismatch",
            extra={"item_id": item.id, "cached": check.cached, "derived": check.derived, "chain_ok": chain_ok},
        )
    return check
