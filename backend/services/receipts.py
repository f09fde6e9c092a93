"""
Réception (IN) et sortie (OUT) de marchandises.

Chaque workflow = UNE unité de travail :
- receive_goods : mouvement IN + PO delivered + cascade sur les besoins ouverts
- issue_goods   : tous les OUT de la commande ou aucun (tout-ou-rien)
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.core.exceptions import (
    AlreadyReceived,
    InsufficientStock,
    InvalidTransition,
    ValidationError,
)
from backend.app.db.models.core_types import (
    MovementDirection,
    POStatus,
    ReferenceType,
    RequirementStatus,
    SalesOrderStatus,
)
from backend.services import audit, notifications
from backend.services.actor import Actor
from backend.services.inventory import MovementReference, apply_movement, lock_item
from backend.services.numbering import allocate_number
from backend.services.procurement import lock_purchase_order
from backend.services.requirements import close_requirements, lock_sales_order, reconcile_after_receipt
from backend.services.rules import require_positive
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptResult:
    po_id: int
    po_number: str
    item_id: int
    received_quantity: int
    previous_stock: int
    new_stock: int
    resolved_requirements: int
    updated_requirements: int
    open_requisitions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IssuedLine:
    item_id: int
    quantity: int
    previous_quantity: int
    new_quantity: int


@dataclass(frozen=True)
class IssueResult:
    sales_order_id: int
    so_number: str
    invoice_number: str
    lines: list[IssuedLine]


def receive_goods(
    db: Session,
    po_id: int,
    actor: Actor,
    received_quantity: int | None = None,
) -> ReceiptResult:
    """
    Réception d'un PO.

    - delivered -> AlreadyReceived (jamais de double comptage)
    - cancelled -> InvalidTransition
    - sinon : IN de received_quantity (défaut = quantité commandée), PO delivered,
      puis cascade sur les besoins ouverts de l'article.
    """
    with unit_of_work(db):
        po = lock_purchase_order(db, po_id)
        if po.status == POStatus.delivered:
            raise AlreadyReceived(po.id)
        if po.status not in (POStatus.pending, POStatus.approved):
            raise InvalidTransition("purchase_order", po.id, po.status.value, "receive")

        qty = po.quantity if received_quantity is None else require_positive(received_quantity, "received_quantity")

        previous = lock_item(db, po.item_id).qty_on_hand
        new = apply_movement(
            db,
            po.item_id,
            MovementDirection.inbound,
            qty,
            MovementReference(ReferenceType.purchase_order, number=po.po_number, notes="Goods receipt"),
            actor,
        )

        po.status = POStatus.delivered
        po.received_quantity = qty
        po.delivered_at = datetime.now(timezone.utc)

        cascade = reconcile_after_receipt(db, po.item_id, new)

        audit.record(
            db,
            actor,
            f"Received PO {po.po_number}: {qty} units of {po.item.name} ({previous} -> {new})",
            "purchase_orders",
            "receive",
        )
        notifications.enqueue(
            db,
            notifications.PURCHASE_ORDER_DELIVERED,
            po_id=po.id,
            po_number=po.po_number,
            item_id=po.item_id,
            item_name=po.item.name,
            received_quantity=qty,
            previous_stock=previous,
            new_stock=new,
            resolved_requirements=len(cascade.resolved),
        )

        result = ReceiptResult(
            po_id=po.id,
            po_number=po.po_number,
            item_id=po.item_id,
            received_quantity=qty,
            previous_stock=previous,
            new_stock=new,
            resolved_requirements=len(cascade.resolved),
            updated_requirements=cascade.updated,
            open_requisitions=cascade.open_requisitions,
        )

    logger.info(
        "goods_received",
        extra={
            "po_number": result.po_number,
            "item_id": result.item_id,
            "quantity": result.received_quantity,
            "new_stock": result.new_stock,
            "resolved": result.resolved_requirements,
        },
    )
    return result


def issue_goods(db: Session, sales_order_id: int, actor: Actor) -> IssueResult:
    """
    Sortie de stock d'une commande client (facturation).

    Les quantités d'un même article sur plusieurs lignes sont cumulées ; les
    articles sont verrouillés par id croissant (ordre de verrouillage stable
    entre transactions concurrentes). La disponibilité de TOUS les articles
    est vérifiée avant le premier mouvement.
    """
    with unit_of_work(db):
        order = lock_sales_order(db, sales_order_id)
        if order.status != SalesOrderStatus.pending:
            raise InvalidTransition("sales_order", order.id, order.status.value, "issue")
        if not order.lines:
            raise ValidationError(f"No items found for sales order #{order.id}", field="lines")

        totals: dict[int, int] = defaultdict(int)
        for line in order.lines:
            totals[line.item_id] += line.quantity

        for item_id in sorted(totals):
            item = lock_item(db, item_id)
            if item.qty_on_hand < totals[item_id]:
                raise InsufficientStock(item.id, item.qty_on_hand, totals[item_id])

        invoice_number = allocate_number(db, get_settings().INVOICE_PREFIX)

        issued: list[IssuedLine] = []
        for item_id in sorted(totals):
            qty = totals[item_id]
            new = apply_movement(
                db,
                item_id,
                MovementDirection.outbound,
                qty,
                MovementReference(ReferenceType.sales_order, number=order.so_number, notes=invoice_number),
                actor,
            )
            issued.append(IssuedLine(item_id=item_id, quantity=qty, previous_quantity=new + qty, new_quantity=new))

        order.status = SalesOrderStatus.completed
        order.completed_by = actor.user_id
        order.completed_at = datetime.now(timezone.utc)
        close_requirements(db, order.id, RequirementStatus.fulfilled)

        audit.record(
            db,
            actor,
            f"Issued SO {order.so_number} (invoice {invoice_number}, {len(issued)} items)",
            "sales_orders",
            "issue",
        )
        result = IssueResult(
            sales_order_id=order.id,
            so_number=order.so_number,
            invoice_number=invoice_number,
            lines=issued,
        )

    logger.info(
        "goods_issued",
        extra={"so_number": result.so_number, "invoice_number": result.invoice_number, "items": len(result.lines)},
    )
    return result
