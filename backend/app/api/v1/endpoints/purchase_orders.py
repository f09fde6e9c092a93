from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.core_types import POStatus
from backend.app.schemas.procurement import PurchaseOrderRead
from backend.services import procurement, receipts
from backend.services.actor import Actor

router = APIRouter(prefix="/purchase-orders")


class POCreate(BaseModel):
    supplier_id: int
    item_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    expected_delivery_date: date | None = None
    notes: str | None = None


class POCancel(BaseModel):
    reason: str | None = None


class POReceive(BaseModel):
    # défaut : quantité commandée
    received_quantity: int | None = Field(default=None, gt=0)


@router.get("", response_model=list[PurchaseOrderRead])
def list_pos(status: POStatus | None = None, db: Session = Depends(get_db)):
    return procurement.list_purchase_orders(db, status=status)


@router.get("/{po_id}", response_model=PurchaseOrderRead)
def get_po(po_id: int, db: Session = Depends(get_db)):
    return procurement.get_purchase_order(db, po_id)


@router.post("", response_model=PurchaseOrderRead, status_code=201)
def create_po(payload: POCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.create_purchase_order(
        db,
        payload.supplier_id,
        payload.item_id,
        payload.quantity,
        actor,
        unit_price=payload.unit_price,
        expected_delivery_date=payload.expected_delivery_date,
        notes=payload.notes,
    )


@router.post("/{po_id}/approve", response_model=PurchaseOrderRead)
def approve_po(po_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.approve_purchase_order(db, po_id, actor)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderRead)
def cancel_po(po_id: int, payload: POCancel | None = None, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.cancel_purchase_order(db, po_id, actor, reason=payload.reason if payload else None)


@router.post("/{po_id}/receive")
def receive_po(po_id: int, payload: POReceive | None = None, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = receipts.receive_goods(
        db,
        po_id,
        actor,
        received_quantity=payload.received_quantity if payload else None,
    )
    return {
        "po_id": result.po_id,
        "po_number": result.po_number,
        "item_id": result.item_id,
        "received_quantity": result.received_quantity,
        "previous_stock": result.previous_stock,
        "new_stock": result.new_stock,
        "resolved_requirements": result.resolved_requirements,
        "updated_requirements": result.updated_requirements,
        "open_requisitions": result.open_requisitions,
    }
