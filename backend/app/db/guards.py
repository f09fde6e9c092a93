"""
Garde-fous ORM du ledger.

- stock_movements est append-only : UPDATE / DELETE interdits.
- items.qty_on_hand est un cache : il ne peut changer que dans un flush qui
  insère aussi un StockMovement de cet article avec new_quantity égal à la
  nouvelle valeur. Un article neuf démarre à 0 (stock initial = mouvement IN).

Le SQL brut n'est pas couvert ici ; la contrainte CHECK qty_on_hand >= 0
reste la dernière barrière côté base.
"""
from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from backend.app.core.exceptions import LedgerIntegrityError
from backend.app.db.models.models_v1 import Item, StockMovement

logger = logging.getLogger(__name__)


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    logger.error("ledger_movement_update_blocked", extra={"movement_id": target.id})
    raise LedgerIntegrityError(f"Stock movement #{target.id} is immutable", movement_id=target.id)


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    logger.error("ledger_movement_delete_blocked", extra={"movement_id": target.id})
    raise LedgerIntegrityError(f"Stock movement #{target.id} cannot be deleted", movement_id=target.id)


@event.listens_for(Session, "before_flush")
def _check_on_hand_cache(session, flush_context, instances):
    written: dict[int, set[int]] = {}
    for obj in session.new:
        if isinstance(obj, StockMovement):
            written.setdefault(obj.item_id, set()).add(obj.new_quantity)

    for obj in session.new:
        if isinstance(obj, Item) and obj.qty_on_hand not in (None, 0):
            raise LedgerIntegrityError(
                "New items start at 0; record opening stock as an IN movement",
                sku=obj.sku,
            )

    for obj in session.dirty:
        if not isinstance(obj, Item):
            continue
        hist = get_history(obj, "qty_on_hand")
        if not hist.added:
            continue
        new_value = hist.added[0]
        if new_value not in written.get(obj.id, ()):
            logger.error(
                "ledger_cache_write_blocked",
                extra={"item_id": obj.id, "qty_on_hand": new_value},
            )
            raise LedgerIntegrityError(
                f"qty_on_hand of item #{obj.id} can only change through a stock movement",
                item_id=obj.id,
            )
