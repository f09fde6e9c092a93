from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backend.app.core.exceptions import InvalidTransition, NotApproved, NotFound, ValidationError
from backend.app.db.models.models_v1 import AuditLog, PurchaseOrder, PurchaseRequisition
from backend.app.db.models.core_types import POStatus, RequisitionStatus
from backend.services import audit, requisitions, workflow


def _po_count(db):
    return db.scalar(select(func.count()).select_from(PurchaseOrder))


def _audit_actions(db):
    return db.execute(
        select(AuditLog.action).where(AuditLog.module == "purchase_requisitions").order_by(AuditLog.id)
    ).scalars().all()


@pytest.fixture
def requisition(db_session, admin, make_item):
    item = make_item(on_hand=0, reorder_level=10, unit_price=12)
    return requisitions.create_requisition(db_session, item.id, 25, admin, reason="Restock")


def test_terminal_states():
    assert workflow.REQUISITION_WORKFLOW.terminal_states == {RequisitionStatus.rejected, RequisitionStatus.converted}
    assert workflow.REQUISITION_WORKFLOW.target(RequisitionStatus.pending, "convert") is None


def test_approve_records_approver(db_session, admin, requisition):
    pr = workflow.approve(db_session, requisition.id, admin)

    assert pr.status == RequisitionStatus.approved
    assert pr.approved_by == admin.user_id
    assert pr.approved_at is not None
    assert pr.active_key is not None


def test_convert_pending_raises_not_approved_and_changes_nothing(db_session, admin, supplier, requisition):
    """
    GIVEN une réquisition pending
    WHEN conversion en PO
    THEN NotApproved, la réquisition reste pending et aucun PO n'existe
    """
    with pytest.raises(NotApproved) as exc:
        workflow.convert_to_purchase_order(db_session, requisition.id, supplier.id, admin)

    assert exc.value.code == "NOT_APPROVED"
    pr = db_session.get(PurchaseRequisition, requisition.id)
    assert pr.status == RequisitionStatus.pending
    assert pr.converted_to_po_id is None
    assert _po_count(db_session) == 0


def test_convert_creates_po_with_defaults(db_session, admin, supplier, requisition):
    workflow.approve(db_session, requisition.id, admin)

    result = workflow.convert_to_purchase_order(db_session, requisition.id, supplier.id, admin)

    po = db_session.get(PurchaseOrder, result.po_id)
    assert po.status == POStatus.pending
    assert po.quantity == 25
    assert po.unit_price == Decimal("12")
    assert po.total_amount == Decimal("300")
    assert po.expected_delivery_date == date.today() + timedelta(days=10)
    assert po.notes == f"Converted from {result.pr_number}"

    pr = db_session.get(PurchaseRequisition, requisition.id)
    assert pr.status == RequisitionStatus.converted
    assert pr.converted_to_po_id == po.id
    assert pr.active_key is None


def test_convert_with_explicit_price_and_date(db_session, admin, supplier, requisition):
    workflow.approve(db_session, requisition.id, admin)
    due = date(2030, 1, 15)

    result = workflow.convert_to_purchase_order(
        db_session, requisition.id, supplier.id, admin, unit_price=9.5, expected_delivery_date=due
    )

    assert result.unit_price == Decimal("9.5")
    assert result.total_amount == Decimal("237.5")
    assert db_session.get(PurchaseOrder, result.po_id).expected_delivery_date == due


def test_converted_cannot_be_converted_again(db_session, admin, supplier, requisition):
    workflow.approve(db_session, requisition.id, admin)
    workflow.convert_to_purchase_order(db_session, requisition.id, supplier.id, admin)

    with pytest.raises(NotApproved):
        workflow.convert_to_purchase_order(db_session, requisition.id, supplier.id, admin)
    assert _po_count(db_session) == 1


def test_unknown_supplier_rolls_back_conversion(db_session, admin, requisition):
    workflow.approve(db_session, requisition.id, admin)

    with pytest.raises(NotFound):
        workflow.convert_to_purchase_order(db_session, requisition.id, 999, admin)

    assert db_session.get(PurchaseRequisition, requisition.id).status == RequisitionStatus.approved
    assert _po_count(db_session) == 0


def test_reject_requires_reason_and_is_terminal(db_session, admin, requisition):
    with pytest.raises(ValidationError):
        workflow.reject(db_session, requisition.id, admin, "  ")

    pr = workflow.reject(db_session, requisition.id, admin, "Budget frozen")
    assert pr.status == RequisitionStatus.rejected
    assert pr.rejection_reason == "Budget frozen"

    with pytest.raises(InvalidTransition) as exc:
        workflow.approve(db_session, requisition.id, admin)
    assert exc.value.current_status == "rejected"
    assert exc.value.action == "approve"


def test_approved_cannot_be_rejected(db_session, admin, requisition):
    workflow.approve(db_session, requisition.id, admin)

    with pytest.raises(InvalidTransition):
        workflow.reject(db_session, requisition.id, admin, "Too late")
    assert db_session.get(PurchaseRequisition, requisition.id).status == RequisitionStatus.approved


def test_transitions_are_audited(db_session, admin, supplier, requisition):
    workflow.approve(db_session, requisition.id, admin)
    workflow.convert_to_purchase_order(db_session, requisition.id, supplier.id, admin)

    assert _audit_actions(db_session) == ["pr_generated", "approve", "convert_to_po"]


def test_failing_audit_sink_never_blocks_the_operation(db_session, admin, requisition):
    class BrokenSink:
        def write(self, db, entry):
            raise RuntimeError("audit store down")

    previous = audit.set_audit_sink(BrokenSink())
    try:
        pr = workflow.approve(db_session, requisition.id, admin)
    finally:
        audit.set_audit_sink(previous)

    assert pr.status == RequisitionStatus.approved
    assert db_session.get(PurchaseRequisition, requisition.id).status == RequisitionStatus.approved
    assert _audit_actions(db_session) == ["pr_generated"]
