"""
Collaborateur d'audit.

Chaque opération qui change l'état écrit (acteur, description, module, action).
Le sink par défaut ajoute une ligne audit_log dans la session de l'opération
(même transaction). Un échec du sink est loggé et n'annule jamais
l'opération métier.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import AuditLog
from backend.services.actor import Actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    actor_id: int
    description: str
    module: str
    action: str


class AuditSink(Protocol):
    def write(self, db: Session, entry: AuditEntry) -> None: ...


class SessionAuditSink:
    def write(self, db: Session, entry: AuditEntry) -> None:
        db.add(
            AuditLog(
                actor_id=entry.actor_id,
                description=entry.description,
                module=entry.module,
                action=entry.action,
            )
        )


_sink: AuditSink = SessionAuditSink()


def set_audit_sink(sink: AuditSink) -> AuditSink:
    """Remplace le sink ; retourne le précédent."""
    global _sink
    previous, _sink = _sink, sink
    return previous


def record(db: Session, actor: Actor, description: str, module: str, action: str) -> None:
    entry = AuditEntry(actor_id=actor.user_id, description=description, module=module, action=action)
    try:
        _sink.write(db, entry)
    except Exception:
        logger.exception(
            "audit_write_failed",
            extra={"audit_module": module, "action": action, "actor_id": actor.user_id},
        )
