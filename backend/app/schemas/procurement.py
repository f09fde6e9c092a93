from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import (
    POStatus,
    RequirementStatus,
    RequisitionStatus,
    Urgency,
)


class RequirementRead(BaseModel):
    id: int
    sales_order_id: int
    sales_order_line_id: int
    item_id: int
    required_quantity: int
    available_quantity: int
    shortage_quantity: int
    status: RequirementStatus
    updated_at: datetime

    class Config:
        from_attributes = True


class RequisitionRead(BaseModel):
    id: int
    pr_number: str
    item_id: int
    sales_order_id: int | None
    required_quantity: int
    urgency: Urgency
    status: RequisitionStatus
    reason: str | None
    rejection_reason: str | None
    requested_by: int
    approved_by: int | None
    converted_to_po_id: int | None
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseOrderRead(BaseModel):
    id: int
    po_number: str
    supplier_id: int
    item_id: int
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    status: POStatus
    expected_delivery_date: date | None
    received_quantity: int | None
    delivered_at: datetime | None
    notes: str | None

    class Config:
        from_attributes = True
