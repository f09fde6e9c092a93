"""
Notifications sortantes (outbox liée à la session).

Pendant l'unité de travail, les événements sont seulement EMPILÉS dans
session.info. Ils partent vers le Notifier configuré après le commit, et sont
jetés si la transaction est annulée. Un échec de livraison est loggé : il ne
touche jamais l'état du stock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

REQUISITION_CREATED = "requisition_created"
SHORTAGE_RESOLVED = "shortage_resolved"
LOW_STOCK_BATCH = "low_stock_batch"
PURCHASE_ORDER_DELIVERED = "purchase_order_delivered"

_OUTBOX_KEY = "notification_outbox"


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def send(self, event: NotificationEvent) -> None: ...


class LoggingNotifier:
    """Transport par défaut : journalise l'événement."""

    def send(self, event: NotificationEvent) -> None:
        logger.info("notification", extra={"kind": event.kind, "payload": event.payload})


_notifier: Notifier = LoggingNotifier()


def set_notifier(notifier: Notifier) -> Notifier:
    """Remplace le transport ; retourne le précédent."""
    global _notifier
    previous, _notifier = _notifier, notifier
    return previous


def enqueue(db: Session, kind: str, **payload: Any) -> None:
    db.info.setdefault(_OUTBOX_KEY, []).append(NotificationEvent(kind=kind, payload=payload))


def pending(db: Session) -> list[NotificationEvent]:
    return list(db.info.get(_OUTBOX_KEY, []))


def publish(notification: NotificationEvent) -> bool:
    """Livraison best-effort ; False si le transport a échoué."""
    try:
        _notifier.send(notification)
        return True
    except Exception:
        logger.exception("notification_delivery_failed", extra={"kind": notification.kind})
        return False


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session):
    for notification in session.info.pop(_OUTBOX_KEY, []):
        publish(notification)


@event.listens_for(Session, "after_soft_rollback")
def _drop_on_rollback(session, previous_transaction):
    dropped = session.info.pop(_OUTBOX_KEY, [])
    if dropped:
        logger.info("notifications_dropped", extra={"count": len(dropped)})
