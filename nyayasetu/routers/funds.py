"""
NyayaSetu - Funds Router
Fund sanction, allocation and utilization tracking.

Money moves Ministry -> District Treasury -> District Welfare Officer ->
Victim. Each disbursement drawn from an allocation is recorded against it
so the dashboard can show utilization per sanction.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nyayasetu.core.database import get_db
from nyayasetu.core.errors import ConflictError, NotFoundError
from nyayasetu.core.security import require_permission, require_user
from nyayasetu.core.user_context import UserContext
from nyayasetu.core.utc import financial_year, utc_now
from nyayasetu.models.models import AllocationStatus, FundAllocation, FundSource, Grievance, GrievanceStatus, User
from nyayasetu.models.schemas import CamelModel, allocation_to_dict, envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/funds", tags=["Funds"])


FUND_FLOW = {
    "step1": {
        "name": "Fund Sanction",
        "actor": "Ministry of Social Justice / State Welfare Department",
        "action": "Sanctions funds under SC/ST Act provisions",
        "details": "Funds are sanctioned based on budget allocation and state requirements",
    },
    "step2": {
        "name": "Fund Allocation",
        "actor": "District Treasury",
        "action": "Allocates funds to District Welfare Officer",
        "details": "Officer receives fund allocation with unique sanction number",
    },
    "step3": {
        "name": "Case Approval",
        "actor": "District Welfare Officer",
        "action": "Reviews and approves victim case",
        "details": "Officer verifies documents, approves relief amount",
    },
    "step4": {
        "name": "Phased Disbursement",
        "actor": "District Welfare Officer",
        "action": "Disburses in 3 phases: 25% -> 25% -> 50%",
        "details": "Each phase requires victim verification before next phase",
    },
    "step5": {
        "name": "Victim Verification",
        "actor": "Victim",
        "action": "Verifies transaction ID from bank SMS",
        "details": "Ensures transparency and confirms receipt of funds",
    },
    "step6": {
        "name": "Case Closure",
        "actor": "System",
        "action": "Auto-closes case after all verifications",
        "details": "Complete audit trail maintained",
    },
}

DEMO_ALLOCATIONS = (
    {
        "source": FundSource.MINISTRY.value,
        "sanction_number": "MSJ/2024/SC-ST/001",
        "sanction_date": datetime(2024, 4, 1),
        "sanctioned_amount": 5_000_000,
        "financial_year": "2024-25",
        "district": "Pune",
        "state": "Maharashtra",
        "amount_utilized": 820_000,
    },
    {
        "source": FundSource.STATE_WELFARE.value,
        "sanction_number": "MH/SWD/2024/102",
        "sanction_date": datetime(2024, 6, 15),
        "sanctioned_amount": 2_500_000,
        "financial_year": "2024-25",
        "district": "Mumbai",
        "state": "Maharashtra",
        "amount_utilized": 500_000,
    },
    {
        "source": FundSource.DISTRICT_TREASURY.value,
        "sanction_number": "DT/PUNE/2024/045",
        "sanction_date": datetime(2024, 8, 1),
        "sanctioned_amount": 1_000_000,
        "financial_year": "2024-25",
        "district": "Pune",
        "state": "Maharashtra",
        "amount_utilized": 0,
    },
)


# =============================================================================
# Request Models
# =============================================================================

class AllocateRequest(CamelModel):
    source: FundSource = FundSource.MINISTRY
    sanction_number: str = Field(..., min_length=3, max_length=60)
    sanction_date: Optional[datetime] = None
    sanctioned_amount: int = Field(..., gt=0)
    financial_year: Optional[str] = None
    district: str = Field(..., min_length=2)
    state: str = "Maharashtra"
    allocated_to_officer: Optional[str] = None


class UtilizeRequest(CamelModel):
    allocation_id: str
    case_id: str
    grievance_id: Optional[str] = None
    amount: int = Field(..., gt=0)


# =============================================================================
# Helpers
# =============================================================================

async def _load_allocation(db: AsyncSession, allocation_id: str) -> FundAllocation:
    result = await db.execute(
        select(FundAllocation)
        .where(FundAllocation.id == allocation_id)
        .execution_options(populate_existing=True)
    )
    allocation = result.unique().scalar_one_or_none()
    if allocation is None:
        raise NotFoundError("Fund allocation not found")
    return allocation


async def _list_allocations(db: AsyncSession, district: Optional[str] = None,
                            state: Optional[str] = None, status: Optional[str] = None) -> list[FundAllocation]:
    query = (
        select(FundAllocation)
        .order_by(FundAllocation.sanction_date.desc())
        .execution_options(populate_existing=True)
    )
    if district:
        query = query.where(FundAllocation.district == district)
    if state:
        query = query.where(FundAllocation.state == state)
    if status:
        query = query.where(FundAllocation.status == status)
    result = await db.execute(query)
    return list(result.unique().scalars().all())


def format_rupees(amount: int) -> str:
    """Indian digit grouping, e.g. 1250000 -> "12,50,000"."""
    digits = str(abs(amount))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"-{digits}" if amount < 0 else digits


# =============================================================================
# Public
# =============================================================================

@router.get("/flow")
async def get_fund_flow():
    return envelope(message="NyayaSetu Fund Disbursement Flow", flow=FUND_FLOW)


@router.post("/seed-demo")
async def seed_demo_data(db: AsyncSession = Depends(get_db)):
    """Create the demonstration allocations once. Repeat calls are no-ops."""
    existing = await db.execute(
        select(FundAllocation).where(FundAllocation.sanction_number == DEMO_ALLOCATIONS[0]["sanction_number"])
    )
    if existing.unique().scalar_one_or_none() is not None:
        allocations = await _list_allocations(db)
        return envelope([allocation_to_dict(a) for a in allocations], "Demo data already exists")

    created = []
    for fields in DEMO_ALLOCATIONS:
        allocation = FundAllocation(**fields)
        allocation.recalculate()
        db.add(allocation)
        created.append(allocation)
    await db.flush()
    logger.info("Seeded %d demo fund allocations", len(created))

    allocations = await _list_allocations(db)
    total_sanctioned = sum(a.sanctioned_amount for a in allocations)
    total_utilized = sum(a.amount_utilized for a in allocations)
    body = envelope(
        [allocation_to_dict(a) for a in allocations],
        "Demo fund allocations created successfully",
        summary={
            "totalSanctioned": total_sanctioned,
            "totalUtilized": total_utilized,
            "totalRemaining": total_sanctioned - total_utilized,
        },
    )
    return JSONResponse(status_code=201, content=body)


# =============================================================================
# Authenticated
# =============================================================================

@router.get("/stats")
async def get_fund_stats(
    district: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard totals: sanction-side utilization and victim-side disbursement."""
    allocations = await _list_allocations(db, district=district, state=state)
    total_sanctioned = sum(a.sanctioned_amount for a in allocations)
    total_utilized = sum(a.amount_utilized for a in allocations)
    total_remaining = sum(a.amount_remaining for a in allocations)
    utilization = round(total_utilized / total_sanctioned * 100, 2) if total_sanctioned else 0

    status_query = select(
        Grievance.status,
        func.count(Grievance.id),
        func.coalesce(func.sum(Grievance.approved_amount), 0),
    ).group_by(Grievance.status)
    if district:
        status_query = status_query.where(Grievance.district == district)
    cases_by_status = [
        {"status": status, "count": int(count), "totalAmount": int(total)}
        for status, count, total in (await db.execute(status_query)).all()
    ]

    paid_query = select(Grievance).where(
        Grievance.status.in_([GrievanceStatus.DISBURSED.value, GrievanceStatus.CLOSED.value])
    )
    if district:
        paid_query = paid_query.where(Grievance.district == district)
    paid = list((await db.execute(paid_query)).scalars().all())

    return envelope({
        "fundSource": {
            "totalSanctioned": total_sanctioned,
            "totalAllocatedToOfficers": total_sanctioned,
            "totalUtilized": total_utilized,
            "totalRemaining": total_remaining,
            "utilizationPercentage": utilization,
        },
        "disbursementToVictims": {
            "totalDisbursed": sum(g.total_disbursed for g in paid),
            "casesCompleted": sum(1 for g in paid if g.status == GrievanceStatus.CLOSED.value),
            "casesInProgress": sum(1 for g in paid if g.status == GrievanceStatus.DISBURSED.value),
        },
        "casesByStatus": cases_by_status,
        "allocationsCount": len(allocations),
    })


@router.get("/allocations")
async def list_allocations(
    district: Optional[str] = Query(None),
    status: Optional[AllocationStatus] = Query(None),
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    allocations = await _list_allocations(db, district=district, status=status.value if status else None)
    return envelope([allocation_to_dict(a) for a in allocations], count=len(allocations))


@router.post("/allocate", status_code=201)
async def create_allocation(
    body: AllocateRequest,
    user: UserContext = Depends(require_permission("fund_manage")),
    db: AsyncSession = Depends(get_db),
):
    """Record a sanction. Unless another officer is named it goes to the caller."""
    duplicate = await db.execute(
        select(FundAllocation.id).where(FundAllocation.sanction_number == body.sanction_number)
    )
    if duplicate.scalar_one_or_none() is not None:
        raise ConflictError(f"Sanction number {body.sanction_number} already exists")

    officer_id = body.allocated_to_officer or user.user_id
    if await db.get(User, officer_id) is None:
        raise NotFoundError("Officer not found")

    allocation = FundAllocation(
        source=body.source.value,
        sanction_number=body.sanction_number,
        sanction_date=body.sanction_date or utc_now(),
        sanctioned_amount=body.sanctioned_amount,
        financial_year=body.financial_year or financial_year(),
        district=body.district,
        state=body.state,
        allocated_to_officer=officer_id,
        amount_utilized=0,
    )
    allocation.recalculate()
    db.add(allocation)
    await db.flush()
    logger.info("Allocation %s created: Rs %d for %s", allocation.sanction_number, allocation.sanctioned_amount,
                allocation.district)

    allocation = await _load_allocation(db, allocation.id)
    return envelope(allocation_to_dict(allocation), "Fund allocation created successfully")


@router.post("/utilize")
async def utilize_fund(
    body: UtilizeRequest,
    user: UserContext = Depends(require_permission("fund_manage")),
    db: AsyncSession = Depends(get_db),
):
    allocation = await _load_allocation(db, body.allocation_id)
    if body.grievance_id and await db.get(Grievance, body.grievance_id) is None:
        raise NotFoundError("Grievance not found")
    allocation.utilize(body.case_id, body.grievance_id, body.amount)
    await db.flush()

    return envelope(
        {
            "allocationId": allocation.id,
            "sanctionNumber": allocation.sanction_number,
            "amountUtilized": allocation.amount_utilized,
            "amountRemaining": allocation.amount_remaining,
        },
        f"Rs {format_rupees(body.amount)} utilized from fund allocation",
    )


@router.get("/district/{district}/summary")
async def district_summary(
    district: str,
    user: UserContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await FundAllocation.get_district_summary(db, district))
