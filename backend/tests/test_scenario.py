from datetime import date, timedelta

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import DuplicateRequisition
from backend.app.db.models.models_v1 import StockRequirement
from backend.app.db.models.core_types import POStatus, RequirementStatus, RequisitionStatus, Urgency
from backend.services import inventory, notifications, procurement, receipts, requisitions, workflow


def test_shortage_to_receipt_end_to_end(db_session, admin, make_item, make_order, supplier, notifier):
    """
    GIVEN article X (stock 0, seuil 10), commande A de 15 X, installation dans 5 jours
    WHEN réquisition -> doublon refusé -> approbation -> PO -> réception de 20
    THEN besoin critical puis résolu, stock 20, shortage_resolved émis
    """
    today = date.today()
    item = make_item(on_hand=0, reorder_level=10, name="Inverter X")
    order = make_order((item, 15), customer="Order A", installation_date=today + timedelta(days=5))

    requirement = db_session.scalar(select(StockRequirement).where(StockRequirement.sales_order_id == order.id))
    assert (requirement.shortage_quantity, requirement.status) == (15, RequirementStatus.critical)

    # ARRANGE: réquisition depuis le manque
    pr = requisitions.generate_from_shortage(db_session, requirement.id, admin, today=today)
    assert pr.urgency == Urgency.critical
    assert notifier.of_kind(notifications.REQUISITION_CREATED)

    with pytest.raises(DuplicateRequisition):
        requisitions.generate_from_shortage(db_session, requirement.id, admin, today=today)

    # ACT: approbation, conversion, réception
    workflow.approve(db_session, pr.id, admin)
    conversion = workflow.convert_to_purchase_order(db_session, pr.id, supplier.id, admin)
    result = receipts.receive_goods(db_session, conversion.po_id, admin, received_quantity=20)

    # ASSERT
    assert result.new_stock == 20
    assert inventory.current_on_hand(db_session, item.id) == 20
    assert inventory.verify_ledger(db_session, item.id).ok
    assert procurement.get_purchase_order(db_session, conversion.po_id).status == POStatus.delivered
    assert requisitions.get_requisition(db_session, pr.id).status == RequisitionStatus.converted

    db_session.refresh(requirement)
    assert (requirement.available_quantity, requirement.shortage_quantity) == (20, 0)
    assert requirement.status == RequirementStatus.sufficient
    assert result.resolved_requirements == 1
    # la réquisition convertie n'est plus active
    assert result.open_requisitions == []

    (resolved,) = notifier.of_kind(notifications.SHORTAGE_RESOLVED)
    assert resolved.payload["so_number"] == order.so_number
    assert resolved.payload["new_stock"] == 20

    # la commande peut maintenant être servie
    issued = receipts.issue_goods(db_session, order.id, admin)
    assert issued.lines[0].new_quantity == 5
