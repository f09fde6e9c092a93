from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.models_v1 import Item
from backend.app.schemas.stock_level import ItemRead, LedgerCheckRead, MovementRead
from backend.services import inventory
from backend.services.actor import Actor

router = APIRouter(prefix="/items")


class ItemCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    uom: str = Field(default="unit", min_length=1, max_length=32)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    reorder_level: int = Field(default=0, ge=0)
    # stock initial : enregistré comme mouvement OPENING, jamais écrit directement
    opening_quantity: int = Field(default=0, ge=0)


@router.get("", response_model=list[ItemRead])
def list_items(db: Session = Depends(get_db)):
    return db.execute(select(Item).order_by(Item.sku)).scalars().all()


@router.post("", response_model=ItemRead, status_code=201)
def create_item(payload: ItemCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return inventory.create_item(
        db,
        sku=payload.sku,
        name=payload.name,
        actor=actor,
        uom=payload.uom,
        unit_price=payload.unit_price,
        reorder_level=payload.reorder_level,
        opening_quantity=payload.opening_quantity,
    )


@router.get("/{item_id}", response_model=ItemRead)
def get_item(item_id: int, db: Session = Depends(get_db)):
    return inventory.get_item(db, item_id)


@router.get("/{item_id}/movements", response_model=list[MovementRead])
def item_movements(item_id: int, limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)):
    inventory.get_item(db, item_id)
    return inventory.movement_history(db, item_id, limit=limit)


@router.get("/{item_id}/ledger-check", response_model=LedgerCheckRead)
def ledger_check(item_id: int, db: Session = Depends(get_db)):
    return inventory.verify_ledger(db, item_id)
