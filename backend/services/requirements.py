"""
Suivi des besoins de stock (stock_requirements) et cascade de réconciliation.

Un besoin = une ligne de commande client : requis vs disponible (snapshot du
stock de l'article), manque = max(0, requis - disponible), statut dérivé par
classify_shortage (le seuil de réappro sert de seuil de gravité).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.exceptions import InvalidTransition, NotFound, ValidationError
from backend.app.db.models.models_v1 import (
    Item,
    PurchaseRequisition,
    SalesOrder,
    StockRequirement,
)
from backend.app.db.models.core_types import (
    ACTIVE_REQUISITION_STATUSES,
    OPEN_REQUIREMENT_STATUSES,
    RequirementStatus,
    SalesOrderStatus,
)
from backend.services import audit, notifications
from backend.services.actor import Actor
from backend.services.rules import classify_shortage, shortage_of
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequirementSnapshot:
    requirement_id: int
    sales_order_line_id: int
    item_id: int
    required_quantity: int
    available_quantity: int
    shortage_quantity: int
    status: RequirementStatus


@dataclass(frozen=True)
class RecalculationResult:
    sales_order_id: int
    requirements: list[RequirementSnapshot]
    changed: int


@dataclass(frozen=True)
class CascadeResult:
    item_id: int
    new_on_hand: int
    updated: int
    resolved: list[int] = field(default_factory=list)
    # réquisitions encore actives pour un besoin désormais couvert (à trier)
    open_requisitions: list[str] = field(default_factory=list)


def _snapshot(row: StockRequirement) -> RequirementSnapshot:
    return RequirementSnapshot(
        requirement_id=row.id,
        sales_order_line_id=row.sales_order_line_id,
        item_id=row.item_id,
        required_quantity=row.required_quantity,
        available_quantity=row.available_quantity,
        shortage_quantity=row.shortage_quantity,
        status=row.status,
    )


def _apply_snapshot(row: StockRequirement, required: int, available: int, reorder_level: int) -> bool:
    """Met la ligne à jour ; False (et rien n'est touché) si rien ne change."""
    shortage = shortage_of(required, available)
    status = classify_shortage(shortage, reorder_level)
    if (
        row.required_quantity == required
        and row.available_quantity == available
        and row.shortage_quantity == shortage
        and row.status == status
    ):
        return False
    row.required_quantity = required
    row.available_quantity = available
    row.shortage_quantity = shortage
    row.status = status
    row.updated_at = datetime.now(timezone.utc)
    return True


def lock_sales_order(db: Session, sales_order_id: int) -> SalesOrder:
    order = (
        db.execute(
            select(SalesOrder)
            .where(SalesOrder.id == sales_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if order is None:
        raise NotFound("sales_order", sales_order_id)
    return order


def rebuild_requirements(db: Session, order: SalesOrder) -> tuple[list[StockRequirement], int]:
    """
    Remplace les besoins de la commande par des snapshots frais.

    Idempotent : une ligne dont le contenu ne change pas n'est pas réécrite
    (id, created_at, updated_at identiques). Les besoins de lignes disparues
    sont supprimés. Ne commit pas.
    """
    if not order.lines:
        raise ValidationError(f"No items found for sales order #{order.id}", field="lines")

    existing = {
        (row.sales_order_line_id, row.item_id): row
        for row in db.execute(
            select(StockRequirement).where(StockRequirement.sales_order_id == order.id)
        ).scalars()
    }

    rows: list[StockRequirement] = []
    changed = 0
    for line in order.lines:
        item = db.get(Item, line.item_id)
        if item is None:
            raise NotFound("item", line.item_id)

        row = existing.pop((line.id, line.item_id), None)
        if row is None:
            shortage = shortage_of(line.quantity, item.qty_on_hand)
            row = StockRequirement(
                sales_order_id=order.id,
                sales_order_line_id=line.id,
                item_id=line.item_id,
                required_quantity=line.quantity,
                available_quantity=item.qty_on_hand,
                shortage_quantity=shortage,
                status=classify_shortage(shortage, item.reorder_level),
            )
            db.add(row)
            changed += 1
        elif _apply_snapshot(row, line.quantity, item.qty_on_hand, item.reorder_level):
            changed += 1
        rows.append(row)

    for stale in existing.values():
        db.delete(stale)
        changed += 1

    db.flush()
    return rows, changed


def recalculate(db: Session, sales_order_id: int, actor: Actor) -> RecalculationResult:
    with unit_of_work(db):
        order = lock_sales_order(db, sales_order_id)
        if order.status != SalesOrderStatus.pending:
            raise InvalidTransition("sales_order", order.id, order.status.value, "recalculate")

        rows, changed = rebuild_requirements(db, order)
        result = RecalculationResult(
            sales_order_id=order.id,
            requirements=[_snapshot(r) for r in rows],
            changed=changed,
        )
        audit.record(
            db,
            actor,
            f"Recalculated stock requirements for SO #{order.so_number} ({changed} changed)",
            "stock_requirements",
            "recalculate",
        )

    logger.info(
        "requirements_recalculated",
        extra={"sales_order_id": sales_order_id, "rows": len(result.requirements), "changed": changed},
    )
    return result


def reconcile_after_receipt(db: Session, item_id: int, new_on_hand: int) -> CascadeResult:
    """
    Cascade après réception : le snapshot "disponible" de chaque besoin OUVERT
    de l'article (commande encore pending) passe au nouveau stock, le statut est
    reclassé. Un besoin qui était en manque et ne l'est plus est RÉSOLU et
    déclenche une notification shortage_resolved.

    Les besoins des commandes annulées / livrées ne sont jamais touchés.
    Ne commit pas : tourne dans l'unité de travail de la réception.
    """
    item = db.get(Item, item_id)
    if item is None:
        raise NotFound("item", item_id)

    rows = (
        db.execute(
            select(StockRequirement)
            .join(SalesOrder, SalesOrder.id == StockRequirement.sales_order_id)
            .where(StockRequirement.item_id == item_id)
            .where(StockRequirement.status.in_(OPEN_REQUIREMENT_STATUSES))
            .where(SalesOrder.status == SalesOrderStatus.pending)
            .order_by(StockRequirement.id)
            .with_for_update(of=StockRequirement)
        )
        .scalars()
        .all()
    )

    updated = 0
    resolved: list[StockRequirement] = []
    for row in rows:
        was_short = row.shortage_quantity > 0
        if _apply_snapshot(row, row.required_quantity, new_on_hand, item.reorder_level):
            updated += 1
        if was_short and row.available_quantity >= row.required_quantity:
            resolved.append(row)

    db.flush()

    open_requisitions: list[str] = []
    for row in resolved:
        order = row.order
        notifications.enqueue(
            db,
            notifications.SHORTAGE_RESOLVED,
            requirement_id=row.id,
            sales_order_id=order.id,
            so_number=order.so_number,
            customer_name=order.customer_name,
            item_id=item.id,
            item_name=item.name,
            required_quantity=row.required_quantity,
            new_stock=new_on_hand,
        )
        open_requisitions.extend(
            db.execute(
                select(PurchaseRequisition.pr_number)
                .where(PurchaseRequisition.item_id == item.id)
                .where(PurchaseRequisition.sales_order_id == order.id)
                .where(PurchaseRequisition.status.in_(ACTIVE_REQUISITION_STATUSES))
            ).scalars()
        )

    if updated:
        logger.info(
            "requirements_reconciled",
            extra={
                "item_id": item.id,
                "new_on_hand": new_on_hand,
                "updated": updated,
                "resolved": len(resolved),
            },
        )

    return CascadeResult(
        item_id=item.id,
        new_on_hand=new_on_hand,
        updated=updated,
        resolved=[r.id for r in resolved],
        open_requisitions=open_requisitions,
    )


def close_requirements(db: Session, sales_order_id: int, status: RequirementStatus) -> int:
    """Passe les besoins ouverts de la commande en fulfilled / cancelled."""
    rows = (
        db.execute(
            select(StockRequirement)
            .where(StockRequirement.sales_order_id == sales_order_id)
            .where(StockRequirement.status.in_(OPEN_REQUIREMENT_STATUSES))
        )
        .scalars()
        .all()
    )
    now = datetime.now(timezone.utc)
    for row in rows:
        row.status = status
        row.updated_at = now
    db.flush()
    return len(rows)


def list_requirements(
    db: Session,
    *,
    sales_order_id: int | None = None,
    status: RequirementStatus | None = None,
) -> list[StockRequirement]:
    stmt = (
        select(StockRequirement)
        .join(SalesOrder, SalesOrder.id == StockRequirement.sales_order_id)
        .where(SalesOrder.status != SalesOrderStatus.cancelled)
        .order_by(StockRequirement.id)
    )
    if sales_order_id is not None:
        stmt = stmt.where(StockRequirement.sales_order_id == sales_order_id)
    if status is not None:
        stmt = stmt.where(StockRequirement.status == status)
    return list(db.execute(stmt).scalars().all())
