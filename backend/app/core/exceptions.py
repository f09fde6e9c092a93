"""
Exceptions métier typées.

Chaque erreur porte un `code` stable (exposé par l'API) et des données
structurées (to_dict). Les appelants attrapent par type, jamais par message.

    StockLedgerError
    +-- ValidationError
    +-- NotFound
    +-- InsufficientStock
    +-- DuplicateRequisition
    +-- InvalidTransition
    |   +-- NotApproved
    |   +-- AlreadyReceived
    +-- LedgerIntegrityError
"""
from __future__ import annotations

from typing import Any


class StockLedgerError(Exception):
    code = "STOCK_LEDGER_ERROR"
    http_status = 400

    def __init__(self, message: str, **data: Any):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.data}


class ValidationError(StockLedgerError):
    """Entrée invalide ; rien n'a été écrit."""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, field=field)
        self.field = field


class NotFound(StockLedgerError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} #{entity_id} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStock(StockLedgerError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, item_id: int, available: int, required: int):
        super().__init__(
            f"Insufficient stock for item #{item_id} (available={available}, required={required})",
            item_id=item_id,
            available=available,
            required=required,
        )
        self.item_id = item_id
        self.available = available
        self.required = required


class DuplicateRequisition(StockLedgerError):
    code = "DUPLICATE_REQUISITION"
    http_status = 409

    def __init__(self, requisition_id: int, pr_number: str, status: str):
        super().__init__(
            f"PR already exists: {pr_number} (Status: {status})",
            requisition_id=requisition_id,
            pr_number=pr_number,
            status=status,
        )
        self.requisition_id = requisition_id
        self.pr_number = pr_number
        self.status = status


class InvalidTransition(StockLedgerError):
    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity: str, entity_id: Any, current: str, action: str, message: str | None = None):
        super().__init__(
            message or f"Cannot {action} {entity} #{entity_id}: status is {current}",
            entity=entity,
            id=entity_id,
            current_status=current,
            action=action,
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current
        self.action = action


class NotApproved(InvalidTransition):
    code = "NOT_APPROVED"

    def __init__(self, requisition_id: int, current: str):
        super().__init__(
            "purchase_requisition",
            requisition_id,
            current,
            "convert",
            message=f"PR #{requisition_id} is not approved (status: {current})",
        )


class AlreadyReceived(InvalidTransition):
    code = "ALREADY_RECEIVED"

    def __init__(self, po_id: int):
        super().__init__(
            "purchase_order",
            po_id,
            "delivered",
            "receive",
            message=f"PO #{po_id} already received",
        )


class LedgerIntegrityError(StockLedgerError):
    """Écriture hors ledger détectée (cache modifié, mouvement altéré)."""

    code = "LEDGER_INTEGRITY"
    http_status = 500
