from app.services.job_store import JobStore, JobStoreConflict
from app.services.plans import (
    advance_plan,
    apply_plan_update,
    compute_next_run_at,
    normalize_category_lists,
)

__all__ = [
    "JobStore",
    "JobStoreConflict",
    "advance_plan",
    "apply_plan_update",
    "compute_next_run_at",
    "normalize_category_lists",
]
