"""
Complaint API Routes

Endpoints for the complaint lifecycle: filing, editing, deletion,
assignment, resolution, client response, withdrawal, staff-wide
listing and timeline viewing.

Every endpoint passes the authenticated actor into the service
explicitly. Domain errors are mapped to HTTP by the handler in main.py.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_actor, require_staff
from ..models.db_models import ActorRole, Category, ComplaintEvent, ComplaintStatus, Priority
from ..models.domain import Actor
from ..services.complaints import ComplaintService


router = APIRouter(prefix="/complaints", tags=["complaints"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateComplaintRequest(BaseModel):
    """Request to file a new complaint."""
    project_id: str = Field(..., description="Project the complaint is about")
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", description="Details of the issue")
    category: Category = Field(default=Category.OTHER)
    priority: Priority = Field(default=Priority.MEDIUM)


class AssignRequest(BaseModel):
    """Assign a PENDING complaint. Omit assignee_id to auto-assign."""
    assignee_id: Optional[str] = None
    expected_status: Optional[ComplaintStatus] = Field(None, description="Status the caller last saw")


class ReassignRequest(BaseModel):
    assignee_id: Optional[str] = None
    reason: Optional[str] = None


class ResolveRequest(BaseModel):
    resolution_comment: str = Field(..., description="What was done to resolve the issue")
    expected_status: Optional[ComplaintStatus] = None


class RespondRequest(BaseModel):
    """Client response to a resolution."""
    action: str = Field(..., description="APPROVE or REJECT")
    feedback: Optional[str] = None
    expected_status: Optional[ComplaintStatus] = None


class WithdrawRequest(BaseModel):
    reason: Optional[str] = None
    expected_status: Optional[ComplaintStatus] = None


class UpdateComplaintRequest(BaseModel):
    """Edit a PENDING complaint. Omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None


class ComplaintResponse(BaseModel):
    """Complaint as returned by every lifecycle endpoint."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    client_id: str
    assignee_id: Optional[str]
    title: str
    description: str
    category: Category
    priority: Priority
    status: ComplaintStatus
    resolution_comment: Optional[str]
    version: int
    created_at: datetime
    updated_at: datetime


class HistoryEntryResponse(BaseModel):
    """Timeline entry."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    sequence: int
    from_status: Optional[ComplaintStatus]
    to_status: ComplaintStatus
    event: ComplaintEvent
    actor_id: str
    actor_role: ActorRole
    message: Optional[str]
    created_at: datetime


class ComplaintPageResponse(BaseModel):
    """One page of the staff-wide listing."""
    items: List[ComplaintResponse]
    total: int
    page: int
    limit: int


class AllowedActionsResponse(BaseModel):
    complaint_id: str
    status: str
    actions: Dict[str, str]
    force_targets: Optional[List[str]] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=ComplaintResponse, status_code=201)
async def create_complaint(
    request: CreateComplaintRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """File a new complaint. Client-only."""
    service = ComplaintService(db)
    return service.create_complaint(
        actor,
        project_id=request.project_id,
        title=request.title,
        description=request.description,
        category=request.category,
        priority=request.priority,
    )


@router.get("", response_model=List[ComplaintResponse])
async def list_complaints(
    status: Optional[ComplaintStatus] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Clients: complaints they filed. Staff: complaints assigned to them."""
    return ComplaintService(db).list_complaints(actor, status)


@router.get("/all", response_model=ComplaintPageResponse)
async def list_all_complaints(
    status: Optional[ComplaintStatus] = Query(None),
    category: Optional[Category] = Query(None),
    priority: Optional[Priority] = Query(None),
    project_id: Optional[str] = Query(None),
    client_id: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None, description="Staff id, or \"unassigned\""),
    search: Optional[str] = Query(None, description="Matches title or description"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """Every complaint, filtered and paginated, newest first. Staff only."""
    items, total = ComplaintService(db).list_all_complaints(
        actor,
        status=status, category=category, priority=priority,
        project_id=project_id, client_id=client_id, assignee_id=assignee_id,
        search=search, page=page, limit=limit,
    )
    return ComplaintPageResponse(
        items=[ComplaintResponse.model_validate(c) for c in items],
        total=total, page=page, limit=limit,
    )


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return ComplaintService(db).get_complaint(complaint_id)


@router.get("/{complaint_id}/history", response_model=List[HistoryEntryResponse])
async def get_history(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Full transition timeline, oldest first."""
    return ComplaintService(db).get_history(complaint_id)


@router.get("/{complaint_id}/actions", response_model=AllowedActionsResponse)
async def get_allowed_actions(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Transitions the caller may apply now."""
    return ComplaintService(db).allowed_actions(complaint_id, actor)


@router.post("/{complaint_id}/assign", response_model=ComplaintResponse)
async def assign_complaint(
    complaint_id: str,
    request: AssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """Assign and start work (PENDING -> IN_PROGRESS)."""
    return ComplaintService(db).assign_complaint(
        complaint_id, actor,
        assignee_id=request.assignee_id,
        expected_status=request.expected_status,
    )


@router.post("/{complaint_id}/reassign", response_model=ComplaintResponse)
async def reassign_complaint(
    complaint_id: str,
    request: ReassignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_staff),
):
    """Move a PENDING or IN_PROGRESS complaint to another staff member."""
    return ComplaintService(db).reassign_complaint(
        complaint_id, actor, assignee_id=request.assignee_id, reason=request.reason,
    )


@router.post("/{complaint_id}/resolve", response_model=ComplaintResponse)
async def resolve_complaint(
    complaint_id: str,
    request: ResolveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Assignee marks the complaint RESOLVED."""
    return ComplaintService(db).resolve_complaint(
        complaint_id, actor, request.resolution_comment, expected_status=request.expected_status,
    )


@router.post("/{complaint_id}/respond", response_model=ComplaintResponse)
async def respond_to_resolution(
    complaint_id: str,
    request: RespondRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Owner approves (-> CLOSED) or rejects (-> IN_PROGRESS) the resolution."""
    return ComplaintService(db).respond_to_resolution(
        complaint_id, actor, request.action,
        feedback=request.feedback, expected_status=request.expected_status,
    )


@router.post("/{complaint_id}/withdraw", response_model=ComplaintResponse)
async def withdraw_complaint(
    complaint_id: str,
    request: WithdrawRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Owner withdraws a PENDING complaint."""
    return ComplaintService(db).withdraw_complaint(
        complaint_id, actor, reason=request.reason, expected_status=request.expected_status,
    )


@router.patch("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: str,
    request: UpdateComplaintRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Owner edits the details of a PENDING complaint."""
    return ComplaintService(db).update_complaint(
        complaint_id, actor,
        title=request.title,
        description=request.description,
        category=request.category,
        priority=request.priority,
    )


@router.delete("/{complaint_id}", status_code=204)
async def delete_complaint(
    complaint_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Admin deletes any complaint; the owner deletes only while PENDING."""
    ComplaintService(db).delete_complaint(complaint_id, actor)
    return Response(status_code=204)
