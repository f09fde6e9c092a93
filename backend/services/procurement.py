"""
Procurement service.

Ce module orchestre les flux d'achat (fournisseurs, PO, cycle de vie du PO)
mais ne contient AUCUNE logique de calcul de stock.

Toute la logique stock est centralisée dans :
    backend.services.inventory
La réception d'un PO passe par :
    backend.services.receipts
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.core.exceptions import InvalidTransition, NotFound, ValidationError
from backend.app.db.models.models_v1 import Item, PurchaseOrder, Supplier
from backend.app.db.models.core_types import ItemStatus, POStatus
from backend.services import audit
from backend.services.actor import Actor
from backend.services.numbering import allocate_number
from backend.services.rules import require_positive, require_text
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


# ---------- FOURNISSEURS ----------
def create_supplier(
    db: Session,
    name: str,
    actor: Actor,
    email: str | None = None,
    lead_time_days: int | None = None,
) -> Supplier:
    name = require_text(name, "name")
    if lead_time_days is not None and lead_time_days < 0:
        raise ValidationError("lead_time_days must be >= 0", field="lead_time_days")

    with unit_of_work(db):
        exists = db.execute(select(Supplier.id).where(Supplier.name == name)).scalar_one_or_none()
        if exists:
            raise ValidationError("Supplier name already exists", field="name")

        supplier = Supplier(
            name=name,
            email=email,
            lead_time_days=get_settings().DEFAULT_PO_LEAD_DAYS if lead_time_days is None else lead_time_days,
        )
        db.add(supplier)
        db.flush()
        audit.record(db, actor, f"Created supplier {name}", "suppliers", "create")
    return supplier


def get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound("supplier", supplier_id)
    return supplier


# ---------- PURCHASE ORDERS ----------
def get_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = db.get(PurchaseOrder, po_id)
    if po is None:
        raise NotFound("purchase_order", po_id)
    return po


def lock_purchase_order(db: Session, po_id: int) -> PurchaseOrder:
    po = (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if po is None:
        raise NotFound("purchase_order", po_id)
    return po


def insert_purchase_order(
    db: Session,
    *,
    supplier_id: int,
    item_id: int,
    quantity: int,
    actor: Actor,
    unit_price: Decimal | float | None = None,
    expected_delivery_date: date | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Insère le PO (statut pending) dans l'unité de travail de l'appelant.

    Prix par défaut = prix catalogue de l'article ; date attendue par défaut =
    aujourd'hui + délai fournisseur. Ne commit pas.
    """
    require_positive(quantity, "quantity")

    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound("supplier", supplier_id)
    if not supplier.active:
        raise ValidationError("Supplier is inactive", field="supplier_id")

    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("item", item_id)
    if item.status != ItemStatus.active:
        raise ValidationError("Item is inactive", field="item_id")

    price = item.unit_price if unit_price is None else Decimal(str(unit_price))
    if price < 0:
        raise ValidationError("unit_price must be >= 0", field="unit_price")

    if expected_delivery_date is None:
        expected_delivery_date = date.today() + timedelta(days=supplier.lead_time_days)

    po = PurchaseOrder(
        po_number=allocate_number(db, get_settings().PURCHASE_ORDER_PREFIX),
        supplier_id=supplier.id,
        item_id=item.id,
        quantity=quantity,
        unit_price=price,
        total_amount=price * quantity,
        status=POStatus.pending,
        expected_delivery_date=expected_delivery_date,
        notes=notes,
        created_by=actor.user_id,
    )
    db.add(po)
    db.flush()

    logger.info(
        "purchase_order_created",
        extra={"po_number": po.po_number, "item_id": item.id, "quantity": quantity, "supplier_id": supplier.id},
    )
    return po


def create_purchase_order(
    db: Session,
    supplier_id: int,
    item_id: int,
    quantity: int,
    actor: Actor,
    unit_price: Decimal | float | None = None,
    expected_delivery_date: date | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    with unit_of_work(db):
        po = insert_purchase_order(
            db,
            supplier_id=supplier_id,
            item_id=item_id,
            quantity=quantity,
            actor=actor,
            unit_price=unit_price,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
        )
        audit.record(
            db,
            actor,
            f"Created PO {po.po_number}: item #{item_id} x {quantity}",
            "purchase_orders",
            "create",
        )
    return po


def approve_purchase_order(db: Session, po_id: int, actor: Actor) -> PurchaseOrder:
    with unit_of_work(db):
        po = lock_purchase_order(db, po_id)
        if po.status != POStatus.pending:
            raise InvalidTransition("purchase_order", po.id, po.status.value, "approve")

        po.status = POStatus.approved
        po.approved_by = actor.user_id
        po.approved_at = datetime.now(timezone.utc)
        audit.record(db, actor, f"Approved PO {po.po_number}", "purchase_orders", "approve")
    return po


def cancel_purchase_order(db: Session, po_id: int, actor: Actor, reason: str | None = None) -> PurchaseOrder:
    with unit_of_work(db):
        po = lock_purchase_order(db, po_id)
        if po.status not in (POStatus.pending, POStatus.approved):
            raise InvalidTransition("purchase_order", po.id, po.status.value, "cancel")

        po.status = POStatus.cancelled
        if reason:
            po.notes = f"{po.notes}\n{reason}" if po.notes else reason
        audit.record(
            db,
            actor,
            f"Cancelled PO {po.po_number}" + (f": {reason}" if reason else ""),
            "purchase_orders",
            "cancel",
        )
    return po


def list_purchase_orders(db: Session, status: POStatus | None = None) -> list[PurchaseOrder]:
    stmt = select(PurchaseOrder).order_by(PurchaseOrder.id.desc())
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    return list(db.execute(stmt).scalars().all())
