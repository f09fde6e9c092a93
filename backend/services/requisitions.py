"""
Génération des réquisitions d'achat (purchase_requisitions).

Règle centrale : au plus UNE réquisition pending/approved par (article,
commande client), y compris le cas générique (article, NULL).

Fermeture de la course check-then-insert, en couches :
1. la ligne article est verrouillée FOR UPDATE avant la recherche : tous les
   créateurs de réquisitions d'un article sont sérialisés ;
2. active_key ("<item_id>:<so_id|->") est UNIQUE tant que la réquisition est
   active : si deux transactions passent quand même le check, la seconde
   échoue à l'insert ;
3. ce conflit est relu et remonté en DuplicateRequisition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import case, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.config import get_settings
from backend.app.core.exceptions import (
    DuplicateRequisition,
    NotFound,
    StockLedgerError,
    ValidationError,
)
from backend.app.db.models.models_v1 import Item, PurchaseRequisition, SalesOrder, StockRequirement
from backend.app.db.models.core_types import (
    ACTIVE_REQUISITION_STATUSES,
    ItemStatus,
    RequirementStatus,
    RequisitionStatus,
    SalesOrderStatus,
    Urgency,
)
from backend.services import audit, notifications
from backend.services.actor import Actor
from backend.services.inventory import lock_item
from backend.services.numbering import allocate_number
from backend.services.rules import (
    UrgencyPolicy,
    low_stock_urgency,
    require_positive,
    score_urgency,
    shortage_of,
)
from backend.services.uow import unit_of_work

logger = logging.getLogger(__name__)

NOTIFY_URGENCIES = (Urgency.high, Urgency.critical)


@dataclass(frozen=True)
class BatchOutcome:
    requirement_id: int
    pr_number: str | None = None
    urgency: Urgency | None = None
    error_code: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


@dataclass(frozen=True)
class SweepResult:
    checked: int
    created: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


def active_key(item_id: int, sales_order_id: int | None) -> str:
    return f"{item_id}:{sales_order_id if sales_order_id is not None else '-'}"


def find_active_requisition(
    db: Session,
    item_id: int,
    sales_order_id: int | None,
) -> PurchaseRequisition | None:
    stmt = (
        select(PurchaseRequisition)
        .where(PurchaseRequisition.item_id == item_id)
        .where(PurchaseRequisition.status.in_(ACTIVE_REQUISITION_STATUSES))
    )
    if sales_order_id is None:
        stmt = stmt.where(PurchaseRequisition.sales_order_id.is_(None))
    else:
        stmt = stmt.where(PurchaseRequisition.sales_order_id == sales_order_id)
    return db.execute(stmt.order_by(PurchaseRequisition.id).limit(1)).scalar_one_or_none()


def _raise_if_conflict(db: Session, key: str | None) -> None:
    """Après un IntegrityError : si active_key est pris, c'est un doublon."""
    if key is None:
        return
    existing = db.execute(
        select(PurchaseRequisition).where(PurchaseRequisition.active_key == key)
    ).scalar_one_or_none()
    if existing is not None:
        logger.info(
            "requisition_conflict_as_duplicate",
            extra={"active_key": key, "pr_number": existing.pr_number},
        )
        raise DuplicateRequisition(existing.id, existing.pr_number, existing.status.value)


def _insert_requisition(
    db: Session,
    *,
    item: Item,
    sales_order_id: int | None,
    quantity: int,
    urgency: Urgency,
    reason: str,
    requester: Actor,
    today: date | None = None,
    notify: bool = True,
    extra: dict[str, Any] | None = None,
) -> PurchaseRequisition:
    """
    Check doublon + numérotation + insert, dans l'unité de travail de
    l'appelant. L'article DOIT déjà être verrouillé (lock_item).
    """
    existing = find_active_requisition(db, item.id, sales_order_id)
    if existing is not None:
        raise DuplicateRequisition(existing.id, existing.pr_number, existing.status.value)

    pr = PurchaseRequisition(
        pr_number=allocate_number(db, get_settings().REQUISITION_PREFIX, today=today),
        item_id=item.id,
        sales_order_id=sales_order_id,
        required_quantity=quantity,
        urgency=urgency,
        status=RequisitionStatus.pending,
        reason=reason,
        requested_by=requester.user_id,
        active_key=active_key(item.id, sales_order_id),
    )
    db.add(pr)
    db.flush()

    audit.record(
        db,
        requester,
        f"Generated {pr.pr_number} for {item.name} x {quantity} (Urgency: {urgency.value})",
        "purchase_requisitions",
        "auto_pr_created" if requester.is_system else "pr_generated",
    )
    if notify and urgency in NOTIFY_URGENCIES:
        notifications.enqueue(
            db,
            notifications.REQUISITION_CREATED,
            requisition_id=pr.id,
            pr_number=pr.pr_number,
            item_id=item.id,
            item_name=item.name,
            quantity=quantity,
            urgency=urgency.value,
            sales_order_id=sales_order_id,
            **(extra or {}),
        )

    logger.info(
        "requisition_created",
        extra={
            "pr_number": pr.pr_number,
            "item_id": item.id,
            "sales_order_id": sales_order_id,
            "quantity": quantity,
            "urgency": urgency.value,
            "actor": requester.name or requester.user_id,
        },
    )
    return pr


def generate_from_shortage(
    db: Session,
    requirement_id: int,
    requester: Actor,
    *,
    today: date | None = None,
    policy: UrgencyPolicy | None = None,
) -> PurchaseRequisition:
    """
    Réquisition pour le manque d'un besoin de commande client.

    Quantité = manque du besoin ; urgence = manque vs seuil de réappro,
    relevée par la date d'installation de la commande.
    """
    today = today or date.today()
    key: str | None = None
    try:
        with unit_of_work(db):
            requirement = db.get(StockRequirement, requirement_id)
            if requirement is None:
                raise NotFound("stock_requirement", requirement_id)

            item = lock_item(db, requirement.item_id)
            db.refresh(requirement)
            order = requirement.order

            if item.status != ItemStatus.active:
                raise ValidationError("Item is inactive", field="item_id")
            if order.status != SalesOrderStatus.pending:
                raise ValidationError(
                    f"Sales order {order.so_number} is {order.status.value}",
                    field="sales_order_id",
                )
            if requirement.shortage_quantity <= 0:
                raise ValidationError("No shortage - PR not needed", field="shortage_quantity")

            urgency = score_urgency(
                requirement.shortage_quantity,
                item.reorder_level,
                order.installation_date,
                today=today,
                policy=policy,
            )
            reason = (
                f"Stock shortage for SO #{order.so_number}: {item.name} - "
                f"Customer: {order.customer_name} (Shortage: {requirement.shortage_quantity} units)"
            )
            key = active_key(item.id, order.id)
            pr = _insert_requisition(
                db,
                item=item,
                sales_order_id=order.id,
                quantity=requirement.shortage_quantity,
                urgency=urgency,
                reason=reason,
                requester=requester,
                today=today,
                extra={"customer": order.customer_name, "so_number": order.so_number},
            )
    except IntegrityError:
        _raise_if_conflict(db, key)
        raise
    return pr


def create_requisition(
    db: Session,
    item_id: int,
    quantity: int,
    requester: Actor,
    sales_order_id: int | None = None,
    reason: str | None = None,
    *,
    today: date | None = None,
    policy: UrgencyPolicy | None = None,
) -> PurchaseRequisition:
    """Réquisition manuelle ; même règle de doublon que la génération auto."""
    require_positive(quantity, "quantity")
    today = today or date.today()
    key: str | None = None
    try:
        with unit_of_work(db):
            item = lock_item(db, item_id)
            if item.status != ItemStatus.active:
                raise ValidationError("Item is inactive", field="item_id")

            deadline = None
            if sales_order_id is not None:
                order = db.get(SalesOrder, sales_order_id)
                if order is None:
                    raise NotFound("sales_order", sales_order_id)
                if order.status != SalesOrderStatus.pending:
                    raise ValidationError(
                        f"Sales order {order.so_number} is {order.status.value}",
                        field="sales_order_id",
                    )
                deadline = order.installation_date

            urgency = score_urgency(
                shortage_of(quantity, item.qty_on_hand),
                item.reorder_level,
                deadline,
                today=today,
                policy=policy,
            )
            key = active_key(item.id, sales_order_id)
            pr = _insert_requisition(
                db,
                item=item,
                sales_order_id=sales_order_id,
                quantity=quantity,
                urgency=urgency,
                reason=(reason or "").strip() or f"Manual requisition for {item.name}",
                requester=requester,
                today=today,
            )
    except IntegrityError:
        _raise_if_conflict(db, key)
        raise
    return pr


def batch_generate_for_order(
    db: Session,
    sales_order_id: int,
    requester: Actor,
    *,
    today: date | None = None,
    policy: UrgencyPolicy | None = None,
) -> list[BatchOutcome]:
    """Une réquisition par besoin en manque ; chaque génération est sa propre transaction."""
    order = db.get(SalesOrder, sales_order_id)
    if order is None:
        raise NotFound("sales_order", sales_order_id)

    requirement_ids = (
        db.execute(
            select(StockRequirement.id)
            .where(StockRequirement.sales_order_id == sales_order_id)
            .where(StockRequirement.status.in_((RequirementStatus.shortage, RequirementStatus.critical)))
            .order_by(StockRequirement.id)
        )
        .scalars()
        .all()
    )

    outcomes: list[BatchOutcome] = []
    for requirement_id in requirement_ids:
        try:
            pr = generate_from_shortage(db, requirement_id, requester, today=today, policy=policy)
        except StockLedgerError as exc:
            outcomes.append(BatchOutcome(requirement_id, error_code=exc.code, message=exc.message))
            continue
        outcomes.append(BatchOutcome(requirement_id, pr_number=pr.pr_number, urgency=pr.urgency))

    logger.info(
        "requisitions_batch_generated",
        extra={
            "sales_order_id": sales_order_id,
            "generated": sum(1 for o in outcomes if o.ok),
            "failed": sum(1 for o in outcomes if not o.ok),
        },
    )
    return outcomes


# ---------- SWEEPS (cron) ----------
def _has_active_generic_requisition():
    return exists().where(
        PurchaseRequisition.item_id == Item.id,
        PurchaseRequisition.sales_order_id.is_(None),
        PurchaseRequisition.status.in_(ACTIVE_REQUISITION_STATUSES),
    )


def check_and_alert_low_stock(
    db: Session,
    actor: Actor | None = None,
    *,
    today: date | None = None,
) -> SweepResult:
    """
    Réappro générique : pour chaque article actif au seuil ou dessous, sans
    réquisition générique active, crée une réquisition (article, NULL).

    Quantité = seuil - stock (le seuil lui-même si le stock est pile au seuil).
    Chaque article = une transaction ; un seul low_stock_batch à la fin.
    """
    actor = actor or Actor.system()
    priority = case(
        (Item.qty_on_hand == 0, 1),
        (Item.qty_on_hand * 2 < Item.reorder_level, 2),
        else_=3,
    )
    candidates = (
        db.execute(
            select(Item.id)
            .where(Item.status == ItemStatus.active)
            .where(Item.reorder_level > 0)
            .where(Item.qty_on_hand <= Item.reorder_level)
            .where(~_has_active_generic_requisition())
            .order_by(priority, Item.name)
        )
        .scalars()
        .all()
    )

    created: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    for item_id in candidates:
        key = active_key(item_id, None)
        try:
            with unit_of_work(db):
                item = lock_item(db, item_id)
                if item.qty_on_hand > item.reorder_level:
                    skipped.append({"item_id": item_id, "reason": "restocked"})
                    continue

                quantity = item.reorder_level - item.qty_on_hand or item.reorder_level
                urgency = low_stock_urgency(item.qty_on_hand, item.reorder_level)
                pr = _insert_requisition(
                    db,
                    item=item,
                    sales_order_id=None,
                    quantity=quantity,
                    urgency=urgency,
                    reason=(
                        f"Auto-generated: Low stock alert for {item.name} "
                        f"(Current: {item.qty_on_hand}, Reorder: {item.reorder_level})"
                    ),
                    requester=actor,
                    today=today,
                    notify=False,
                )
                created.append(
                    {
                        "pr_number": pr.pr_number,
                        "item_id": item.id,
                        "item_name": item.name,
                        "sku": item.sku,
                        "current_stock": item.qty_on_hand,
                        "reorder_level": item.reorder_level,
                        "quantity": quantity,
                        "urgency": urgency.value,
                    }
                )
        except IntegrityError:
            try:
                _raise_if_conflict(db, key)
            except DuplicateRequisition as exc:
                skipped.append({"item_id": item_id, "reason": exc.code, "pr_number": exc.pr_number})
                continue
            raise
        except StockLedgerError as exc:
            logger.warning("low_stock_sweep_skipped", extra={"item_id": item_id, "code": exc.code})
            skipped.append({"item_id": item_id, "reason": exc.code})

    if created:
        notifications.publish(
            notifications.NotificationEvent(
                notifications.LOW_STOCK_BATCH,
                {"items": created, "count": len(created)},
            )
        )

    logger.info(
        "low_stock_sweep_done",
        extra={"checked": len(candidates), "generated": len(created), "skipped": len(skipped)},
    )
    return SweepResult(checked=len(candidates), created=created, skipped=skipped)


def check_sales_order_shortages(
    db: Session,
    actor: Actor | None = None,
    *,
    today: date | None = None,
    policy: UrgencyPolicy | None = None,
) -> SweepResult:
    """
    Réquisitions pour chaque besoin shortage/critical d'une commande pending
    qui n'a pas encore de réquisition active. Critical d'abord.
    """
    actor = actor or Actor.system()
    has_active = exists().where(
        PurchaseRequisition.item_id == StockRequirement.item_id,
        PurchaseRequisition.sales_order_id == StockRequirement.sales_order_id,
        PurchaseRequisition.status.in_(ACTIVE_REQUISITION_STATUSES),
    )
    severity = case((StockRequirement.status == RequirementStatus.critical, 1), else_=2)
    requirement_ids = (
        db.execute(
            select(StockRequirement.id)
            .join(SalesOrder, SalesOrder.id == StockRequirement.sales_order_id)
            .where(StockRequirement.status.in_((RequirementStatus.shortage, RequirementStatus.critical)))
            .where(SalesOrder.status == SalesOrderStatus.pending)
            .where(~has_active)
            .order_by(severity, StockRequirement.created_at, StockRequirement.id)
        )
        .scalars()
        .all()
    )

    created: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    for requirement_id in requirement_ids:
        try:
            pr = generate_from_shortage(db, requirement_id, actor, today=today, policy=policy)
        except StockLedgerError as exc:
            logger.warning(
                "shortage_sweep_skipped",
                extra={"requirement_id": requirement_id, "code": exc.code},
            )
            skipped.append({"requirement_id": requirement_id, "reason": exc.code})
            continue
        created.append(
            {
                "pr_number": pr.pr_number,
                "requirement_id": requirement_id,
                "sales_order_id": pr.sales_order_id,
                "item_id": pr.item_id,
                "quantity": pr.required_quantity,
                "urgency": pr.urgency.value,
            }
        )

    logger.info(
        "shortage_sweep_done",
        extra={"checked": len(requirement_ids), "generated": len(created), "skipped": len(skipped)},
    )
    return SweepResult(checked=len(requirement_ids), created=created, skipped=skipped)


# ---------- LECTURE ----------
def get_requisition(db: Session, requisition_id: int) -> PurchaseRequisition:
    pr = db.get(PurchaseRequisition, requisition_id)
    if pr is None:
        raise NotFound("purchase_requisition", requisition_id)
    return pr


def list_requisitions(
    db: Session,
    *,
    status: RequisitionStatus | None = None,
    item_id: int | None = None,
) -> list[PurchaseRequisition]:
    stmt = select(PurchaseRequisition).order_by(PurchaseRequisition.id.desc())
    if status is not None:
        stmt = stmt.where(PurchaseRequisition.status == status)
    if item_id is not None:
        stmt = stmt.where(PurchaseRequisition.item_id == item_id)
    return list(db.execute(stmt).scalars().all())
