"""
Commandes clients : création (avec snapshots des besoins) et annulation.
La sortie de stock (facturation) est dans backend.services.receipts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.core.exceptions import InvalidTransition, NotFound, ValidationError
from backend.app.db.models.models_v1 import Item, SalesOrder, SalesOrderLine
from backend.app.db.models.core_types import ItemStatus, RequirementStatus, SalesOrderStatus
from backend.services import audit
from backend.services.actor import Actor
from backend.services.numbering import allocate_number
from backend.services.requirements import close_requirements, lock_sales_order, rebuild_requirements
from backend.services.rules import require_positive, require_text
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    item_id: int
    quantity: int
    unit_price: Decimal | None = None


def create_sales_order(
    db: Session,
    customer_name: str,
    lines: Iterable[OrderLine],
    actor: Actor,
    installation_date: date | None = None,
    contact_number: str | None = None,
) -> SalesOrder:
    customer_name = require_text(customer_name, "customer_name")
    lines = list(lines)
    if not lines:
        raise ValidationError("At least one line is required", field="lines")
    for ln in lines:
        require_positive(ln.quantity, "quantity")

    with unit_of_work(db):
        order = SalesOrder(
            so_number=allocate_number(db, get_settings().SALES_ORDER_PREFIX),
            customer_name=customer_name,
            contact_number=contact_number,
            installation_date=installation_date,
            status=SalesOrderStatus.pending,
            created_by=actor.user_id,
        )
        for ln in lines:
            item = db.get(Item, ln.item_id)
            if item is None:
                raise NotFound("item", ln.item_id)
            if item.status != ItemStatus.active:
                raise ValidationError(f"Item {item.sku} is inactive", field="item_id")
            order.lines.append(
                SalesOrderLine(
                    item_id=item.id,
                    quantity=ln.quantity,
                    unit_price=item.unit_price if ln.unit_price is None else Decimal(str(ln.unit_price)),
                )
            )
        db.add(order)
        db.flush()

        rows, _ = rebuild_requirements(db, order)
        short = sum(1 for r in rows if r.shortage_quantity > 0)
        audit.record(
            db,
            actor,
            f"Created SO {order.so_number} for {customer_name} ({len(lines)} lines, {short} short)",
            "sales_orders",
            "create",
        )

    logger.info(
        "sales_order_created",
        extra={"so_number": order.so_number, "lines": len(lines), "short_lines": short},
    )
    return order


def cancel_sales_order(db: Session, sales_order_id: int, actor: Actor) -> SalesOrder:
    """Annulation : les besoins ouverts passent en cancelled (la cascade les ignore)."""
    with unit_of_work(db):
        order = lock_sales_order(db, sales_order_id)
        if order.status != SalesOrderStatus.pending:
            raise InvalidTransition("sales_order", order.id, order.status.value, "cancel")

        order.status = SalesOrderStatus.cancelled
        closed = close_requirements(db, order.id, RequirementStatus.cancelled)
        audit.record(
            db,
            actor,
            f"Cancelled SO {order.so_number} ({closed} requirements closed)",
            "sales_orders",
            "cancel",
        )
    return order


def get_sales_order(db: Session, sales_order_id: int) -> SalesOrder:
    order = db.get(SalesOrder, sales_order_id)
    if order is None:
        raise NotFound("sales_order", sales_order_id)
    return order
