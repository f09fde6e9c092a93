"""
Workflow des réquisitions d'achat.

    pending --approve--> approved --convert--> converted
    pending --reject---> rejected

rejected / converted sont terminaux. Chaque transition = une unité de
travail (transition + audit ensemble). Quitter pending/approved libère
active_key : une nouvelle réquisition pour le même besoin redevient possible.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.exceptions import InvalidTransition, NotApproved, NotFound
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseRequisition
from backend.app.db.models.core_types import ACTIVE_REQUISITION_STATUSES, RequisitionStatus
from backend.services import audit
from backend.services.actor import Actor
from backend.services.procurement import insert_purchase_order
from backend.services.rules import require_text
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    from_state: RequisitionStatus
    to_state: RequisitionStatus
    action: str


@dataclass(frozen=True)
class Workflow:
    name: str
    initial_state: RequisitionStatus
    transitions: tuple[Transition, ...]

    def target(self, current: RequisitionStatus, action: str) -> RequisitionStatus | None:
        for t in self.transitions:
            if t.from_state == current and t.action == action:
                return t.to_state
        return None

    @property
    def terminal_states(self) -> frozenset[RequisitionStatus]:
        sources = {t.from_state for t in self.transitions}
        return frozenset(s for s in RequisitionStatus if s not in sources)


REQUISITION_WORKFLOW = Workflow(
    name="purchase_requisition",
    initial_state=RequisitionStatus.pending,
    transitions=(
        Transition(RequisitionStatus.pending, RequisitionStatus.approved, "approve"),
        Transition(RequisitionStatus.pending, RequisitionStatus.rejected, "reject"),
        Transition(RequisitionStatus.approved, RequisitionStatus.converted, "convert"),
    ),
)


@dataclass(frozen=True)
class ConversionResult:
    requisition_id: int
    pr_number: str
    po_id: int
    po_number: str
    quantity: int
    unit_price: Decimal
    total_amount: Decimal


def _lock_requisition(db: Session, requisition_id: int) -> PurchaseRequisition:
    pr = (
        db.execute(
            select(PurchaseRequisition)
            .where(PurchaseRequisition.id == requisition_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalar_one_or_none()
    )
    if pr is None:
        raise NotFound("purchase_requisition", requisition_id)
    return pr


def _advance(pr: PurchaseRequisition, action: str) -> RequisitionStatus:
    target = REQUISITION_WORKFLOW.target(pr.status, action)
    if target is None:
        if action == "convert":
            raise NotApproved(pr.id, pr.status.value)
        raise InvalidTransition("purchase_requisition", pr.id, pr.status.value, action)

    logger.info(
        "requisition_transition",
        extra={"pr_number": pr.pr_number, "from": pr.status.value, "to": target.value, "action": action},
    )
    pr.status = target
    if target not in ACTIVE_REQUISITION_STATUSES:
        pr.active_key = None
    return target


def approve(db: Session, requisition_id: int, approver: Actor) -> PurchaseRequisition:
    with unit_of_work(db):
        pr = _lock_requisition(db, requisition_id)
        _advance(pr, "approve")
        pr.approved_by = approver.user_id
        pr.approved_at = datetime.now(timezone.utc)
        audit.record(db, approver, f"Approved {pr.pr_number}", "purchase_requisitions", "approve")
    return pr


def reject(db: Session, requisition_id: int, approver: Actor, reason: str) -> PurchaseRequisition:
    reason = require_text(reason, "reason")
    with unit_of_work(db):
        pr = _lock_requisition(db, requisition_id)
        _advance(pr, "reject")
        pr.rejection_reason = reason
        pr.approved_by = approver.user_id
        pr.approved_at = datetime.now(timezone.utc)
        audit.record(db, approver, f"Rejected {pr.pr_number}: {reason}", "purchase_requisitions", "reject")
    return pr


def convert_to_purchase_order(
    db: Session,
    requisition_id: int,
    supplier_id: int,
    actor: Actor,
    unit_price: Decimal | float | None = None,
    expected_delivery_date: date | None = None,
) -> ConversionResult:
    """
    approved -> converted : crée le PO (quantité / article de la réquisition,
    prix catalogue par défaut) et y relie la réquisition.
    NotApproved si la réquisition n'est pas approved ; rien n'est modifié.
    """
    with unit_of_work(db):
        pr = _lock_requisition(db, requisition_id)
        if pr.status != RequisitionStatus.approved:
            raise NotApproved(pr.id, pr.status.value)

        po: PurchaseOrder = insert_purchase_order(
            db,
            supplier_id=supplier_id,
            item_id=pr.item_id,
            quantity=pr.required_quantity,
            actor=actor,
            unit_price=unit_price,
            expected_delivery_date=expected_delivery_date,
            notes=f"Converted from {pr.pr_number}",
        )
        _advance(pr, "convert")
        pr.converted_to_po_id = po.id

        audit.record(
            db,
            actor,
            f"Converted {pr.pr_number} to {po.po_number}",
            "purchase_requisitions",
            "convert_to_po",
        )
        result = ConversionResult(
            requisition_id=pr.id,
            pr_number=pr.pr_number,
            po_id=po.id,
            po_number=po.po_number,
            quantity=po.quantity,
            unit_price=po.unit_price,
            total_amount=po.total_amount,
        )
    return result
