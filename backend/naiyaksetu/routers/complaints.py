"""
NaiyakSetu - Complaints Router
Submission, public tracking, owner and staff views, and admin status changes.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..auth import get_current_principal, get_optional_principal, require_admin, require_staff
from ..database import get_db
from ..responses import success_response
from ..services.complaints import ComplaintService
from ..services.identity import Principal
from ..utils import isoformat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LocationModel(BaseModel):
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    formatted: Optional[str] = None


class AadhaarDataModel(BaseModel):
    """Identity snapshot for verified complaints."""
    model_config = ConfigDict(populate_by_name=True)

    aadhaar_number: str = Field(alias="aadhaarNumber")
    name: Optional[str] = None
    gender: Optional[str] = None
    state: Optional[str] = None
    district: Optional[str] = None


class AttachmentModel(BaseModel):
    """Metadata only; file storage happens elsewhere."""
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    original_name: Optional[str] = Field(default=None, alias="originalName")
    file_type: Optional[str] = Field(default=None, alias="fileType")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    url: Optional[str] = None


class ComplaintCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    category: str
    description: str
    priority: Optional[str] = None
    reporter_type: Optional[str] = Field(default=None, alias="reporterType")
    contact_method: Optional[str] = Field(default=None, alias="contactMethod")
    contact_phone: Optional[str] = Field(default=None, alias="phone")
    department: Optional[str] = None
    location: Optional[LocationModel] = None
    identity: Optional[AadhaarDataModel] = Field(default=None, alias="aadhaarData")
    attachments: List[AttachmentModel] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    status: str
    notes: Optional[str] = None


def _created_payload(complaint) -> dict:
    created_at = isoformat(complaint.created_at)
    return {
        "complaintId": complaint.public_id,
        "status": complaint.status.value,
        "createdAt": created_at,
        "tracking": {
            "complaintNumber": complaint.public_id,
            "status": complaint.status.value,
            "submittedAt": created_at,
        },
    }


# =============================================================================
# SUBMISSION
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_complaint(
    request: ComplaintCreateRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Submit a complaint. Authenticated callers are recorded as the submitter."""
    complaint = ComplaintService(db).create(request.model_dump(), principal=principal)
    return success_response("Complaint registered successfully", **_created_payload(complaint))


@router.post("/anonymous", status_code=status.HTTP_201_CREATED)
def create_anonymous_complaint(
    request: ComplaintCreateRequest,
    db: Session = Depends(get_db),
):
    """Submit a complaint without recording any submitter."""
    complaint = ComplaintService(db).create(request.model_dump(), principal=None, anonymous=True)
    return success_response("Complaint registered successfully", **_created_payload(complaint))


# =============================================================================
# PUBLIC READS
# =============================================================================

@router.get("/track/{complaint_id}")
def track_complaint(complaint_id: str, db: Session = Depends(get_db)):
    return success_response(
        "Complaint retrieved successfully",
        complaint=ComplaintService(db).track(complaint_id),
    )


@router.get("/recent")
def recent_complaints(
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
):
    return success_response(
        "Recent complaints retrieved successfully",
        complaints=ComplaintService(db).recent(limit),
    )


# =============================================================================
# AUTHENTICATED READS
# =============================================================================

@router.get("/my")
def my_complaints(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = None,
    priority: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    complaints, pagination = ComplaintService(db).list_for_submitter(
        principal,
        status=status_filter,
        category=category,
        priority=priority,
        page=page,
        limit=limit,
    )
    return success_response(
        "Complaints retrieved successfully",
        complaints=complaints,
        pagination=pagination,
    )


@router.get("/stats/my")
def my_complaint_stats(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return success_response(
        "Statistics retrieved successfully",
        stats=ComplaintService(db).stats(submitter_id=principal.id),
    )


@router.get("/stats")
def complaint_stats(
    principal: Principal = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return success_response(
        "Statistics retrieved successfully",
        stats=ComplaintService(db).stats(sandbox_only=principal.is_sandbox),
    )


@router.get("")
def list_complaints(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = None,
    priority: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    principal: Principal = Depends(require_staff),
    db: Session = Depends(get_db),
):
    complaints, pagination = ComplaintService(db).list_all(
        status=status_filter,
        category=category,
        priority=priority,
        page=page,
        limit=limit,
        principal=principal,
    )
    return success_response(
        "Complaints retrieved successfully",
        complaints=complaints,
        pagination=pagination,
    )


@router.get("/{complaint_id}")
def get_complaint(
    complaint_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return success_response(
        "Complaint retrieved successfully",
        complaint=ComplaintService(db).detail(complaint_id, principal),
    )


# =============================================================================
# STATUS CHANGES (ADMIN)
# =============================================================================

@router.put("/{complaint_id}/status")
def update_complaint_status(
    complaint_id: str,
    request: StatusUpdateRequest,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    complaint = ComplaintService(db).transition(
        complaint_id, request.status, request.notes, principal
    )
    return success_response(
        "Complaint status updated successfully",
        complaintId=complaint.public_id,
        status=complaint.status.value,
        updatedAt=isoformat(complaint.updated_at),
    )
