"""
API schemas.

Request bodies accept camelCase (what the React front end sends) or
snake_case. Responses are plain dicts built by the to_dict helpers below so
field names match the front end exactly.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from nyayasetu.core.utc import isoformat
from nyayasetu.models.models import Disbursement, Document, FundAllocation, FundLinkedCase, Grievance, User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def envelope(data=None, message: Optional[str] = None, **extra) -> dict:
    """Standard success body: {"success": true, "message": ..., "data": ...}."""
    body: dict = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


# =============================================================================
# Serializers
# =============================================================================

def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "fullName": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "district": user.district,
        "state": user.state,
        "createdAt": isoformat(user.created_at),
        "lastLogin": isoformat(user.last_login),
    }


def disbursement_to_dict(d: Disbursement) -> dict:
    return {
        "id": d.id,
        "phase": d.phase,
        "percentage": d.percentage,
        "amount": d.amount,
        "transactionId": d.transaction_id,
        "allocationId": d.allocation_id,
        "disbursedAt": isoformat(d.disbursed_at),
        "verifiedByVictim": d.verified_by_victim,
        "verifiedAt": isoformat(d.verified_at),
    }


def grievance_to_dict(g: Grievance) -> dict:
    return {
        "id": g.id,
        "caseId": g.case_id,
        "userId": g.user_id,
        "applicationType": g.application_type,
        "applicantName": g.applicant_name,
        "applicantPhone": g.applicant_phone,
        "casteCategory": g.caste_category,
        "address": g.address,
        "district": g.district,
        "state": g.state,
        "incidentDate": isoformat(g.incident_date),
        "incidentDescription": g.incident_description,
        "firNumber": g.fir_number,
        "policeStation": g.police_station,
        "spouseName": g.spouse_name,
        "spouseCasteCategory": g.spouse_caste_category,
        "marriageDate": isoformat(g.marriage_date),
        "marriageRegistrationNumber": g.marriage_registration_number,
        "status": g.status,
        "approvedAmount": g.approved_amount,
        "totalDisbursed": g.total_disbursed,
        "officerRemarks": g.officer_remarks,
        "reviewedBy": g.reviewed_by,
        "reviewedAt": isoformat(g.reviewed_at),
        "disbursements": [disbursement_to_dict(d) for d in g.disbursements],
        "createdAt": isoformat(g.created_at),
        "updatedAt": isoformat(g.updated_at),
        "closedAt": isoformat(g.closed_at),
    }


def document_to_dict(doc: Document) -> dict:
    uploader = doc.uploader
    return {
        "id": doc.id,
        "grievanceId": doc.grievance_id,
        "documentType": doc.document_type,
        "originalFileName": doc.original_file_name,
        "mimeType": doc.mime_type,
        "fileSize": doc.file_size,
        "verified": doc.verified,
        "verificationSkipped": doc.verification_skipped,
        "verificationConfidence": doc.verification_confidence,
        "status": doc.status,
        "uploadedBy": {
            "id": uploader.id,
            "fullName": uploader.full_name,
            "email": uploader.email,
        } if uploader is not None else doc.uploaded_by,
        "uploadedAt": isoformat(doc.uploaded_at),
    }


def linked_case_to_dict(link: FundLinkedCase) -> dict:
    return {
        "caseId": link.case_id,
        "grievanceId": link.grievance_id,
        "amountDisbursed": link.amount_disbursed,
        "disbursedAt": isoformat(link.disbursed_at),
    }


def allocation_to_dict(a: FundAllocation) -> dict:
    officer = a.officer
    return {
        "id": a.id,
        "source": a.source,
        "sanctionNumber": a.sanction_number,
        "sanctionDate": isoformat(a.sanction_date),
        "sanctionedAmount": a.sanctioned_amount,
        "financialYear": a.financial_year,
        "district": a.district,
        "state": a.state,
        "allocatedToOfficer": {
            "id": officer.id,
            "fullName": officer.full_name,
            "email": officer.email,
        } if officer is not None else None,
        "amountUtilized": a.amount_utilized,
        "amountRemaining": a.amount_remaining,
        "status": a.status,
        "linkedCases": [linked_case_to_dict(link) for link in a.linked_cases],
        "createdAt": isoformat(a.created_at),
        "updatedAt": isoformat(a.updated_at),
    }
