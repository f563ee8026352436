# backend/bookflow/routers/membership_plans.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_tenant
from ..models.generated import MembershipPlans as DBPlan
from ..schemas.memberships import MembershipPlanCreate, MembershipPlanRead

router = APIRouter(prefix="/membership-plans", tags=["membership-plans"])


@router.get("", response_model=list[MembershipPlanRead])
def list_membership_plans(tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    return (
        db.query(DBPlan)
        .filter(DBPlan.tenant_id == tenant.id, DBPlan.is_active == 1)
        .order_by(DBPlan.id.asc())
        .all()
    )


@router.post("", response_model=MembershipPlanRead, status_code=status.HTTP_201_CREATED)
def create_membership_plan(
    data: MembershipPlanCreate,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    obj = DBPlan(
        tenant_id=tenant.id,
        currency=data.currency or tenant.currency,
        is_active=1,
        **data.model_dump(exclude={"currency"}),
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj
