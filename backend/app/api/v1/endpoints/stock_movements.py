from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.core_types import MovementDirection, ReferenceType
from backend.services import inventory
from backend.services.actor import Actor

router = APIRouter(prefix="/stock-movements")


# ---------- Schemas ----------
class MovementCreate(BaseModel):
    item_id: int
    direction: MovementDirection
    quantity: int = Field(gt=0)
    reference_type: ReferenceType = ReferenceType.manual
    reference_number: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=255)


class AdjustmentCreate(BaseModel):
    item_id: int
    counted_quantity: int = Field(ge=0)
    reason: str = Field(min_length=1, max_length=255)


# ---------- Endpoints ----------
@router.post("", status_code=201)
def record_movement(payload: MovementCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    # Pas de rejeu automatique : un mouvement n'est pas idempotent
    new = inventory.record_movement(
        db,
        payload.item_id,
        payload.direction,
        payload.quantity,
        inventory.MovementReference(payload.reference_type, payload.reference_number, payload.notes),
        actor,
    )
    return {"item_id": payload.item_id, "qty_on_hand": new}


@router.post("/adjust")
def adjust_stock(payload: AdjustmentCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    new = inventory.adjust_stock(db, payload.item_id, payload.counted_quantity, actor, payload.reason)
    return {"item_id": payload.item_id, "qty_on_hand": new}
