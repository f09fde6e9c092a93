from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import ItemStatus, MovementDirection, ReferenceType


class ItemRead(BaseModel):
    id: int
    sku: str
    name: str
    uom: str
    unit_price: Decimal
    reorder_level: int
    status: ItemStatus
    qty_on_hand: int  # READ ONLY : cache du ledger, jamais écrit par l'API

    class Config:
        from_attributes = True


class StockLevelRead(BaseModel):
    item_id: int
    sku: str
    name: str
    qty_on_hand: int
    reorder_level: int
    stock_status: str


class MovementRead(BaseModel):
    id: int
    item_id: int
    direction: MovementDirection
    quantity: int
    reference_type: ReferenceType
    reference_number: str | None
    notes: str | None
    previous_quantity: int
    new_quantity: int
    happened_at: datetime
    created_by: int

    class Config:
        from_attributes = True


class LedgerCheckRead(BaseModel):
    item_id: int
    cached: int
    derived: int
    movements: int
    chain_ok: bool
    ok: bool

    class Config:
        from_attributes = True
