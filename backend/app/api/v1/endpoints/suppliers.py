from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.models_v1 import Supplier
from backend.services import procurement
from backend.services.actor import Actor

router = APIRouter(prefix="/suppliers")


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    lead_time_days: int | None = Field(default=None, ge=0)


@router.get("")
def list_suppliers(db: Session = Depends(get_db)):
    rows = db.execute(select(Supplier).order_by(Supplier.name)).scalars().all()
    return [
        {
            "id": s.id,
            "name": s.name,
            "email": s.email,
            "lead_time_days": s.lead_time_days,
            "active": s.active,
        }
        for s in rows
    ]


@router.post("", status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    s = procurement.create_supplier(
        db,
        payload.name,
        actor,
        email=payload.email,
        lead_time_days=payload.lead_time_days,
    )
    return {"id": s.id, "name": s.name, "lead_time_days": s.lead_time_days}
