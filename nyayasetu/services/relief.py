"""
Relief workflow rules.

Status transitions, required documents per scheme and the phased
disbursement schedule. Functions here mutate ORM objects but never touch
the session; routers own loading and committing.
"""

import logging
import uuid
from typing import Optional

from nyayasetu.core.errors import InvalidTransitionError, NotFoundError, NyayaSetuError
from nyayasetu.core.utc import utc_now
from nyayasetu.models.models import (
    ApplicationType,
    Disbursement,
    FundAllocation,
    Grievance,
    GrievanceStatus,
)
from nyayasetu.services.document_verification import DocumentType

logger = logging.getLogger(__name__)


# Percentage of the approved amount released in each phase
DISBURSEMENT_PHASES: tuple[int, ...] = (25, 25, 50)

REQUIRED_DOCUMENTS: dict[ApplicationType, tuple[DocumentType, ...]] = {
    ApplicationType.ATROCITY: (
        DocumentType.FIR,
        DocumentType.CASTE_CERTIFICATE,
        DocumentType.AADHAAR,
        DocumentType.BANK_PASSBOOK,
    ),
    ApplicationType.INTERCASTE_MARRIAGE: (
        DocumentType.MARRIAGE_CERTIFICATE,
        DocumentType.CASTE_CERTIFICATE,
        DocumentType.AADHAAR,
        DocumentType.ADDRESS_PROOF,
        DocumentType.BANK_PASSBOOK,
    ),
}

OPTIONAL_DOCUMENTS: dict[ApplicationType, tuple[DocumentType, ...]] = {
    ApplicationType.ATROCITY: (DocumentType.MEDICAL,),
    ApplicationType.INTERCASTE_MARRIAGE: (),
}

ALLOWED_TRANSITIONS: dict[GrievanceStatus, set[GrievanceStatus]] = {
    GrievanceStatus.SUBMITTED: {GrievanceStatus.UNDER_REVIEW, GrievanceStatus.APPROVED, GrievanceStatus.REJECTED},
    GrievanceStatus.UNDER_REVIEW: {GrievanceStatus.APPROVED, GrievanceStatus.REJECTED},
    GrievanceStatus.APPROVED: {GrievanceStatus.DISBURSED},
    GrievanceStatus.REJECTED: set(),
    GrievanceStatus.DISBURSED: {GrievanceStatus.CLOSED},
    GrievanceStatus.CLOSED: set(),
}


def generate_case_id() -> str:
    """Human-facing case reference, e.g. NS-2025-3FA85F64."""
    return f"NS-{utc_now().year}-{uuid.uuid4().hex[:8].upper()}"


def document_checklist(application_type: str, uploaded_types: set[str]) -> dict:
    """Required and optional documents for a scheme, with upload status."""
    scheme = ApplicationType(application_type)
    required = [
        {"documentType": t.value, "uploaded": t.value in uploaded_types}
        for t in REQUIRED_DOCUMENTS[scheme]
    ]
    optional = [
        {"documentType": t.value, "uploaded": t.value in uploaded_types}
        for t in OPTIONAL_DOCUMENTS[scheme]
    ]
    return {
        "applicationType": scheme.value,
        "required": required,
        "optional": optional,
        "complete": all(item["uploaded"] for item in required),
    }


def transition(grievance: Grievance, target: GrievanceStatus) -> None:
    current = GrievanceStatus(grievance.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move case {grievance.case_id} from {current.value} to {target.value}",
            currentStatus=current.value,
        )
    grievance.status = target.value
    grievance.updated_at = utc_now()


def start_review(grievance: Grievance, officer_id: str) -> None:
    transition(grievance, GrievanceStatus.UNDER_REVIEW)
    grievance.reviewed_by = officer_id


def approve(grievance: Grievance, officer_id: str, amount: int, remarks: Optional[str] = None) -> None:
    if amount <= 0:
        raise NyayaSetuError("Approved amount must be positive")
    transition(grievance, GrievanceStatus.APPROVED)
    grievance.approved_amount = amount
    grievance.reviewed_by = officer_id
    grievance.reviewed_at = utc_now()
    if remarks:
        grievance.officer_remarks = remarks
    logger.info("Case %s approved for Rs %d", grievance.case_id, amount)


def reject(grievance: Grievance, officer_id: str, remarks: str) -> None:
    transition(grievance, GrievanceStatus.REJECTED)
    grievance.reviewed_by = officer_id
    grievance.reviewed_at = utc_now()
    grievance.officer_remarks = remarks
    logger.info("Case %s rejected", grievance.case_id)


def phase_amount(approved_amount: int, phase: int) -> int:
    """
    Rupees released in a phase (1-based). Earlier phases round down, the
    final phase pays whatever is left so the phases sum to the approval.
    """
    if not 1 <= phase <= len(DISBURSEMENT_PHASES):
        raise NyayaSetuError(f"Invalid disbursement phase: {phase}")
    if phase == len(DISBURSEMENT_PHASES):
        earlier = sum(phase_amount(approved_amount, p) for p in range(1, phase))
        return approved_amount - earlier
    return approved_amount * DISBURSEMENT_PHASES[phase - 1] // 100


def next_phase(grievance: Grievance) -> int:
    return len(grievance.disbursements) + 1


def disburse(
    grievance: Grievance,
    officer_id: str,
    transaction_id: str,
    allocation: Optional[FundAllocation] = None,
) -> Disbursement:
    """
    Release the next phase.

    The previous phase must have been confirmed by the victim. When an
    allocation is given the amount is drawn from it.
    """
    status = GrievanceStatus(grievance.status)
    if status not in (GrievanceStatus.APPROVED, GrievanceStatus.DISBURSED):
        raise InvalidTransitionError(
            f"Case {grievance.case_id} is {status.value}; only approved cases can be disbursed",
            currentStatus=status.value,
        )
    if not grievance.approved_amount:
        raise InvalidTransitionError(f"Case {grievance.case_id} has no approved amount")

    phase = next_phase(grievance)
    if phase > len(DISBURSEMENT_PHASES):
        raise InvalidTransitionError(f"All phases of case {grievance.case_id} have been disbursed")

    if grievance.disbursements and not grievance.disbursements[-1].verified_by_victim:
        raise InvalidTransitionError(
            f"Phase {phase - 1} has not been verified by the victim yet",
            pendingPhase=phase - 1,
        )

    amount = phase_amount(grievance.approved_amount, phase)
    if allocation is not None:
        allocation.utilize(grievance.case_id, grievance.id, amount)

    disbursement = Disbursement(
        phase=phase,
        percentage=DISBURSEMENT_PHASES[phase - 1],
        amount=amount,
        transaction_id=transaction_id.strip(),
        allocation_id=allocation.id if allocation is not None else None,
        disbursed_by=officer_id,
        disbursed_at=utc_now(),
        verified_by_victim=False,
    )
    grievance.disbursements.append(disbursement)

    if status == GrievanceStatus.APPROVED:
        transition(grievance, GrievanceStatus.DISBURSED)
    else:
        grievance.updated_at = utc_now()

    logger.info("Case %s phase %d disbursed: Rs %d (txn %s)", grievance.case_id, phase, amount, transaction_id)
    return disbursement


def verify_disbursement(grievance: Grievance, phase: int, transaction_id: str) -> Disbursement:
    """
    Victim confirms receipt by re-entering the transaction id from the
    bank SMS. Confirming the final phase closes the case.
    """
    disbursement = next((d for d in grievance.disbursements if d.phase == phase), None)
    if disbursement is None:
        raise NotFoundError(f"Phase {phase} has not been disbursed")
    if disbursement.verified_by_victim:
        raise InvalidTransitionError(f"Phase {phase} is already verified")
    if disbursement.transaction_id.strip().lower() != transaction_id.strip().lower():
        raise NyayaSetuError("Transaction ID does not match our records")

    disbursement.verified_by_victim = True
    disbursement.verified_at = utc_now()

    all_paid = len(grievance.disbursements) == len(DISBURSEMENT_PHASES)
    if all_paid and all(d.verified_by_victim for d in grievance.disbursements):
        transition(grievance, GrievanceStatus.CLOSED)
        grievance.closed_at = utc_now()
        logger.info("Case %s closed after final verification", grievance.case_id)

    return disbursement
