"""
Complaint Desk - Admin Router
Status overrides and workload management.
"""
from typing import Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_admin, require_staff
from ..models.db_models import ComplaintStatus
from ..models.domain import Actor
from ..services.complaints import ComplaintService
from .complaints import ComplaintResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class ForceStatusRequest(BaseModel):
    """Admin override of a complaint's status."""
    target_status: ComplaintStatus
    reason: str = Field(..., description="Audit justification, stored in history")
    bypass: bool = Field(default=False, description="Allow targets with no legal edge")
    assignee_id: Optional[str] = None
    expected_status: Optional[ComplaintStatus] = None


class WorkloadEntry(BaseModel):
    staff_id: str
    active_complaint_count: int
    workload_percentage: float


class BalanceResponse(BaseModel):
    mean: float
    moved_count: int
    moved: List[Dict[str, str]]
    skipped: List[Dict[str, str]]
    workload_before: Dict[str, int]
    workload_after: Dict[str, int]


def to_balance_response(result) -> BalanceResponse:
    return BalanceResponse(
        mean=round(result.mean, 2),
        moved_count=result.moved_count,
        moved=result.moved,
        skipped=result.skipped,
        workload_before=result.workload_before,
        workload_after=result.workload_after,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/complaints/{complaint_id}/force-status", response_model=ComplaintResponse)
async def force_status(
    complaint_id: str,
    request: ForceStatusRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    """Force a complaint into another status. Recorded as STATUS_FORCED."""
    return ComplaintService(db).force_status(
        complaint_id, admin,
        target_status=request.target_status,
        reason=request.reason,
        bypass=request.bypass,
        assignee_id=request.assignee_id,
        expected_status=request.expected_status,
    )


@router.get("/workload", response_model=List[WorkloadEntry])
async def get_workload(
    project_id: Optional[str] = Query(None, description="Limit to staff eligible for a project"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """Active complaint count per staff member, least loaded first."""
    snapshots = ComplaintService(db).get_workload(project_id)
    return [
        WorkloadEntry(
            staff_id=s.staff_id,
            active_complaint_count=s.active_complaint_count,
            workload_percentage=s.workload_percentage,
        )
        for s in snapshots
    ]


@router.post("/workload/balance", response_model=BalanceResponse)
async def balance_workload(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    """Move oldest PENDING complaints off overloaded staff."""
    logger.info(f"Workload balancing requested by {admin.id}")
    result = ComplaintService(db).balance_workload(admin)
    return to_balance_response(result)
