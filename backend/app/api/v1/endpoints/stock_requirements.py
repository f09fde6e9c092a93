from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.db.models.core_types import RequirementStatus
from backend.app.schemas.procurement import RequirementRead, RequisitionRead
from backend.services import requirements, requisitions
from backend.services.actor import Actor

router = APIRouter(prefix="/stock-requirements")


class BatchGenerate(BaseModel):
    sales_order_id: int


@router.get("", response_model=list[RequirementRead])
def list_requirements(
    sales_order_id: int | None = None,
    status: RequirementStatus | None = None,
    db: Session = Depends(get_db),
):
    return requirements.list_requirements(db, sales_order_id=sales_order_id, status=status)


@router.post("/recalculate/{sales_order_id}")
def recalculate(sales_order_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    # idempotent : rejouable sans risque
    result = requirements.recalculate(db, sales_order_id, actor)
    return {
        "sales_order_id": result.sales_order_id,
        "changed": result.changed,
        "requirements": [
            {
                "id": r.requirement_id,
                "item_id": r.item_id,
                "required_quantity": r.required_quantity,
                "available_quantity": r.available_quantity,
                "shortage_quantity": r.shortage_quantity,
                "status": r.status,
            }
            for r in result.requirements
        ],
    }


@router.post("/{requirement_id}/generate-pr", response_model=RequisitionRead, status_code=201)
def generate_pr(requirement_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return requisitions.generate_from_shortage(db, requirement_id, actor)


@router.post("/batch-generate-pr")
def batch_generate_pr(payload: BatchGenerate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    outcomes = requisitions.batch_generate_for_order(db, payload.sales_order_id, actor)
    return {
        "sales_order_id": payload.sales_order_id,
        "created": sum(1 for o in outcomes if o.ok),
        "results": [
            {
                "requirement_id": o.requirement_id,
                "pr_number": o.pr_number,
                "urgency": o.urgency,
                "error_code": o.error_code,
                "message": o.message,
            }
            for o in outcomes
        ],
    }
