"""
NyayaSetu - Grievances Router
Filing, review and phased disbursement of relief cases.

Victims file and track their own cases and confirm each payment phase.
Officers review, approve or reject, and release payments.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nyayasetu.core.database import get_db
from nyayasetu.core.errors import NotFoundError, PermissionDeniedError
from nyayasetu.core.security import require_permission, require_user, require_victim
from nyayasetu.core.user_context import UserContext
from nyayasetu.models.models import (
    ApplicationType,
    Document,
    FundAllocation,
    Grievance,
    GrievanceStatus,
)
from nyayasetu.models.schemas import CamelModel, disbursement_to_dict, envelope, grievance_to_dict
from nyayasetu.services import relief
from nyayasetu.services.storage import create_grievance_folder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/grievances", tags=["Grievances"])
intercaste_router = APIRouter(prefix="/api/intercaste", tags=["Intercaste Marriage"])


# =============================================================================
# Request Models
# =============================================================================

class ApplicantDetails(CamelModel):
    applicant_name: str = Field(..., min_length=2, max_length=150)
    applicant_phone: Optional[str] = None
    caste_category: Optional[str] = None
    address: Optional[str] = None
    district: str = Field(..., min_length=2)
    state: str = "Maharashtra"


class CreateGrievanceRequest(ApplicantDetails):
    """Atrocity relief application."""
    incident_date: Optional[datetime] = None
    incident_description: str = Field(..., min_length=10)
    fir_number: Optional[str] = None
    police_station: Optional[str] = None


class CreateIntercasteRequest(ApplicantDetails):
    """Intercaste marriage incentive application."""
    spouse_name: str = Field(..., min_length=2, max_length=150)
    spouse_caste_category: Optional[str] = None
    marriage_date: datetime
    marriage_registration_number: Optional[str] = None


class ApproveRequest(CamelModel):
    approved_amount: int = Field(..., gt=0)
    remarks: Optional[str] = None


class RejectRequest(CamelModel):
    remarks: str = Field(..., min_length=3)


class DisburseRequest(CamelModel):
    transaction_id: str = Field(..., min_length=4, max_length=64)
    allocation_id: Optional[str] = None


class VerifyPhaseRequest(CamelModel):
    transaction_id: str = Field(..., min_length=1)


# =============================================================================
# Helpers
# =============================================================================

async def load_grievance(db: AsyncSession, grievance_id: str) -> Grievance:
    """Fetch a grievance with its disbursements, or raise NotFoundError."""
    result = await db.execute(
        select(Grievance)
        .where(Grievance.id == grievance_id)
        .execution_options(populate_existing=True)
    )
    grievance = result.scalar_one_or_none()
    if grievance is None:
        raise NotFoundError("Grievance not found")
    return grievance


def ensure_can_view(grievance: Grievance, user: UserContext) -> None:
    if user.has_permission("grievance_read_all"):
        return
    if grievance.user_id != user.user_id:
        raise PermissionDeniedError("Access denied")


async def _file_grievance(db: AsyncSession, user: UserContext, application_type: ApplicationType, fields: dict) -> Grievance:
    grievance = Grievance(
        case_id=relief.generate_case_id(),
        user_id=user.user_id,
        application_type=application_type.value,
        status=GrievanceStatus.SUBMITTED.value,
        **fields,
    )
    db.add(grievance)
    await db.flush()
    await create_grievance_folder(grievance.id)
    logger.info("Filed %s case %s for user %s", application_type.value, grievance.case_id, user.user_id)
    return await load_grievance(db, grievance.id)


# =============================================================================
# Filing
# =============================================================================

@router.post("", status_code=201)
async def create_grievance(
    body: CreateGrievanceRequest,
    user: UserContext = Depends(require_victim),
    db: AsyncSession = Depends(get_db),
):
    grievance = await _file_grievance(db, user, ApplicationType.ATROCITY, body.model_dump())
    return envelope(grievance_to_dict(grievance), "Grievance submitted successfully")


@intercaste_router.post("/create", status_code=201)
async def create_intercaste_application(
    body: CreateIntercasteRequest,
    user: UserContext = Depends(require_victim),
    db: AsyncSession = Depends(get_db),
):
    grievance = await _file_grievance(db, user, ApplicationType.INTERCASTE_MARRIAGE, body.model_dump())
    return envelope(grievance_to_dict(grievance), "Intercaste marriage application submitted successfully")


# =============================================================================
# Reading
# =============================================================================

@router.get("")
async def list_grievances(
    status: Optional[GrievanceStatus] = Query(None),
    district: Optional[str] = Query(None),
    application_type: Optional[ApplicationType] = Query(None, alias="applicationType"),
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Victims see their own cases; officers see every case."""
    query = select(Grievance).order_by(Grievance.created_at.desc())
    if not user.has_permission("grievance_read_all"):
        query = query.where(Grievance.user_id == user.user_id)
    if status is not None:
        query = query.where(Grievance.status == status.value)
    if district:
        query = query.where(Grievance.district == district)
    if application_type is not None:
        query = query.where(Grievance.application_type == application_type.value)

    result = await db.execute(query)
    grievances = result.scalars().all()
    return envelope([grievance_to_dict(g) for g in grievances], count=len(grievances))


@router.get("/{grievance_id}")
async def get_grievance(
    grievance_id: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    grievance = await load_grievance(db, grievance_id)
    ensure_can_view(grievance, user)
    return envelope(grievance_to_dict(grievance))


@router.get("/{grievance_id}/checklist")
async def get_document_checklist(
    grievance_id: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Required documents for the case's scheme and which are uploaded."""
    grievance = await load_grievance(db, grievance_id)
    ensure_can_view(grievance, user)
    documents = await Document.find_by_grievance(db, grievance.id)
    checklist = relief.document_checklist(grievance.application_type, {d.document_type for d in documents})
    return envelope(checklist)


# =============================================================================
# Officer Actions
# =============================================================================

@router.post("/{grievance_id}/review")
async def start_review(
    grievance_id: str,
    user: UserContext = Depends(require_permission("grievance_review")),
    db: AsyncSession = Depends(get_db),
):
    grievance = await load_grievance(db, grievance_id)
    relief.start_review(grievance, user.user_id)
    await db.flush()
    return envelope(grievance_to_dict(grievance), "Grievance moved to review")


@router.post("/{grievance_id}/approve")
async def approve_grievance(
    grievance_id: str,
    body: ApproveRequest,
    user: UserContext = Depends(require_permission("grievance_review")),
    db: AsyncSession = Depends(get_db),
):
    grievance = await load_grievance(db, grievance_id)
    relief.approve(grievance, user.user_id, body.approved_amount, body.remarks)
    await db.flush()
    return envelope(grievance_to_dict(grievance), "Grievance approved")


@router.post("/{grievance_id}/reject")
async def reject_grievance(
    grievance_id: str,
    body: RejectRequest,
    user: UserContext = Depends(require_permission("grievance_review")),
    db: AsyncSession = Depends(get_db),
):
    grievance = await load_grievance(db, grievance_id)
    relief.reject(grievance, user.user_id, body.remarks)
    await db.flush()
    return envelope(grievance_to_dict(grievance), "Grievance rejected")


@router.post("/{grievance_id}/disburse")
async def disburse_phase(
    grievance_id: str,
    body: DisburseRequest,
    user: UserContext = Depends(require_permission("disbursement_create")),
    db: AsyncSession = Depends(get_db),
):
    """Release the next payment phase, optionally drawn from a fund allocation."""
    grievance = await load_grievance(db, grievance_id)

    allocation = None
    if body.allocation_id:
        allocation = await db.get(FundAllocation, body.allocation_id)
        if allocation is None:
            raise NotFoundError("Fund allocation not found")

    disbursement = relief.disburse(grievance, user.user_id, body.transaction_id, allocation)
    await db.flush()

    grievance = await load_grievance(db, grievance_id)
    return envelope(
        grievance_to_dict(grievance),
        f"Phase {disbursement.phase} disbursed",
        disbursement=disbursement_to_dict(disbursement),
    )


# =============================================================================
# Victim Confirmation
# =============================================================================

@router.post("/{grievance_id}/disbursements/{phase}/verify")
async def verify_phase(
    grievance_id: str,
    phase: int,
    body: VerifyPhaseRequest,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Victim confirms a payment by re-entering its transaction id."""
    grievance = await load_grievance(db, grievance_id)
    if grievance.user_id != user.user_id:
        raise PermissionDeniedError("Only the applicant can confirm a payment")

    disbursement = relief.verify_disbursement(grievance, phase, body.transaction_id)
    await db.flush()

    message = "Case closed: all phases received" if grievance.status == GrievanceStatus.CLOSED.value \
        else f"Phase {phase} confirmed"
    return envelope(
        grievance_to_dict(grievance),
        message,
        disbursement=disbursement_to_dict(disbursement),
    )
