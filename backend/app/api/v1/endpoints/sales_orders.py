from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.models_v1 import SalesOrder
from backend.services import receipts, sales
from backend.services.actor import Actor

router = APIRouter(prefix="/sales-orders")


class SOLineCreate(BaseModel):
    item_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)


class SOCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    contact_number: str | None = Field(default=None, max_length=64)
    installation_date: date | None = None
    lines: list[SOLineCreate] = Field(min_length=1)


def _order_out(order: SalesOrder) -> dict:
    return {
        "id": order.id,
        "so_number": order.so_number,
        "customer_name": order.customer_name,
        "installation_date": order.installation_date,
        "status": order.status,
        "lines": [
            {"id": ln.id, "item_id": ln.item_id, "quantity": ln.quantity, "unit_price": float(ln.unit_price)}
            for ln in order.lines
        ],
    }


@router.post("", status_code=201)
def create_sales_order(payload: SOCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    order = sales.create_sales_order(
        db,
        payload.customer_name,
        [sales.OrderLine(ln.item_id, ln.quantity, ln.unit_price) for ln in payload.lines],
        actor,
        installation_date=payload.installation_date,
        contact_number=payload.contact_number,
    )
    return _order_out(order)


@router.get("/{sales_order_id}")
def get_sales_order(sales_order_id: int, db: Session = Depends(get_db)):
    return _order_out(sales.get_sales_order(db, sales_order_id))


@router.post("/{sales_order_id}/issue")
def issue_goods(sales_order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = receipts.issue_goods(db, sales_order_id, actor)
    return {
        "sales_order_id": result.sales_order_id,
        "so_number": result.so_number,
        "invoice_number": result.invoice_number,
        "lines": [
            {
                "item_id": ln.item_id,
                "quantity": ln.quantity,
                "previous_quantity": ln.previous_quantity,
                "new_quantity": ln.new_quantity,
            }
            for ln in result.lines
        ],
    }


@router.post("/{sales_order_id}/cancel")
def cancel_sales_order(sales_order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    order = sales.cancel_sales_order(db, sales_order_id, actor)
    return {"id": order.id, "so_number": order.so_number, "status": order.status}
