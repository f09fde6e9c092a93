from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.core_types import RequisitionStatus
from backend.app.schemas.procurement import RequisitionRead
from backend.services import requisitions, workflow
from backend.services.actor import Actor

router = APIRouter(prefix="/purchase-requisitions")


class PRCreate(BaseModel):
    item_id: int
    quantity: int = Field(gt=0)
    sales_order_id: int | None = None
    reason: str | None = None


class PRReject(BaseModel):
    reason: str = Field(min_length=1)


class PRConvert(BaseModel):
    supplier_id: int
    unit_price: Decimal | None = Field(default=None, ge=0)
    expected_delivery_date: date | None = None


@router.get("", response_model=list[RequisitionRead])
def list_requisitions(
    status: RequisitionStatus | None = None,
    item_id: int | None = None,
    db: Session = Depends(get_db),
):
    return requisitions.list_requisitions(db, status=status, item_id=item_id)


@router.post("", response_model=RequisitionRead, status_code=201)
def create_requisition(payload: PRCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return requisitions.create_requisition(
        db,
        payload.item_id,
        payload.quantity,
        actor,
        sales_order_id=payload.sales_order_id,
        reason=payload.reason,
    )


@router.post("/low-stock-sweep")
def low_stock_sweep(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = requisitions.check_and_alert_low_stock(db, actor)
    return {"checked": result.checked, "created": result.created, "skipped": result.skipped}


@router.get("/{requisition_id}", response_model=RequisitionRead)
def get_requisition(requisition_id: int, db: Session = Depends(get_db)):
    return requisitions.get_requisition(db, requisition_id)


@router.post("/{requisition_id}/approve", response_model=RequisitionRead)
def approve(requisition_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return workflow.approve(db, requisition_id, actor)


@router.post("/{requisition_id}/reject", response_model=RequisitionRead)
def reject(requisition_id: int, payload: PRReject, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return workflow.reject(db, requisition_id, actor, payload.reason)


@router.post("/{requisition_id}/convert-to-po", status_code=201)
def convert_to_po(
    requisition_id: int,
    payload: PRConvert,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    result = workflow.convert_to_purchase_order(
        db,
        requisition_id,
        payload.supplier_id,
        actor,
        unit_price=payload.unit_price,
        expected_delivery_date=payload.expected_delivery_date,
    )
    return {
        "requisition_id": result.requisition_id,
        "pr_number": result.pr_number,
        "po_id": result.po_id,
        "po_number": result.po_number,
        "quantity": result.quantity,
        "total_amount": float(result.total_amount),
    }
