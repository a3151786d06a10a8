import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_admin
from app.models import Category, ScrapePlan, ScrapeRun
from app.schemas.plan import CategoryResponse, PlanPayload, PlanResponse, ScrapeRunResponse
from app.services.plans import apply_plan_update
from collector.schedule import ScheduleComputeError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_plan_or_404(db: Session, plan_id: int) -> ScrapePlan:
    plan = db.query(ScrapePlan).filter(ScrapePlan.id == plan_id).first()
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


def _save_plan(db: Session, plan: ScrapePlan, payload: PlanPayload, actor: str) -> ScrapePlan:
    try:
        apply_plan_update(plan, payload, actor)
    except ScheduleComputeError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))
    db.add(plan)
    db.commit()
    db.refresh(plan)
    logger.info(f"Plan {plan.id} ({plan.name}) saved by {actor}; next run {plan.next_run_at}")
    return plan


@router.get("/plans", response_model=list[PlanResponse])
def list_plans(db: Session = Depends(get_db), actor: str = Depends(require_admin)):
    return db.query(ScrapePlan).order_by(ScrapePlan.id).all()


@router.post("/plans", response_model=PlanResponse, status_code=201)
def create_plan(payload: PlanPayload, db: Session = Depends(get_db), actor: str = Depends(require_admin)):
    return _save_plan(db, ScrapePlan(), payload, actor)


@router.get("/plans/{plan_id}", response_model=PlanResponse)
def get_plan(plan_id: int, db: Session = Depends(get_db), actor: str = Depends(require_admin)):
    return _get_plan_or_404(db, plan_id)


@router.put("/plans/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: int,
    payload: PlanPayload,
    db: Session = Depends(get_db),
    actor: str = Depends(require_admin),
):
    """Replace the plan's structured fields; derived fields and the next run are recomputed."""
    return _save_plan(db, _get_plan_or_404(db, plan_id), payload, actor)


@router.get("/plans/{plan_id}/runs", response_model=list[ScrapeRunResponse])
def list_plan_runs(
    plan_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: str = Depends(require_admin),
):
    _get_plan_or_404(db, plan_id)
    return (
        db.query(ScrapeRun)
        .filter(ScrapeRun.plan_id == plan_id)
        .order_by(ScrapeRun.started_at.desc(), ScrapeRun.id.desc())
        .limit(limit)
        .all()
    )


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: str = Depends(require_admin),
):
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active == True)
    return query.order_by(Category.position, Category.slug).all()
