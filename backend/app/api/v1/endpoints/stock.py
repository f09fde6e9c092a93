from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Item
from backend.app.db.models.core_types import ItemStatus
from backend.app.schemas.stock_level import StockLevelRead
from backend.services.rules import stock_status

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockLevelRead],
)
def get_stock(
    item_id: int | None = None,
    below_reorder: bool = False,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - qty_on_hand est le cache du ledger, jamais modifiable ici
    - below_reorder=true : seulement les articles au seuil ou dessous
    """

    stmt = select(Item).where(Item.status == ItemStatus.active).order_by(Item.sku)

    if item_id is not None:
        stmt = stmt.where(Item.id == item_id)

    if below_reorder:
        stmt = stmt.where(Item.qty_on_hand <= Item.reorder_level)

    items = db.execute(stmt).scalars().all()
    return [
        StockLevelRead(
            item_id=i.id,
            sku=i.sku,
            name=i.name,
            qty_on_hand=i.qty_on_hand,
            reorder_level=i.reorder_level,
            stock_status=stock_status(i.qty_on_hand, i.reorder_level),
        )
        for i in items
    ]
