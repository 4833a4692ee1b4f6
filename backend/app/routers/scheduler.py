"""
Scheduler API Routes

Internal endpoints for periodic maintenance, called by cron or a
job runner. Workload balancing is the only scheduled task.
"""
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.complaints import ComplaintService, SYSTEM_ACTOR
from .admin import BalanceResponse, to_balance_response


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/balance-workload", response_model=BalanceResponse)
async def run_balance_workload(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Periodic workload balancing.

    System-automatic - reassignments are recorded with the system actor.
    """
    result = ComplaintService(db).balance_workload(SYSTEM_ACTOR)
    return to_balance_response(result)


@router.get("/health", response_model=dict)
async def scheduler_health(_: bool = Depends(verify_internal_key)):
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}
