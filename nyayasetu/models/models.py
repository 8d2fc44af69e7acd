"""
NyayaSetu Database Models
SQLAlchemy ORM models for all entities.

All datetime columns use DateTime(timezone=True).
Use utc_now() from nyayasetu.core.utc for all timestamp defaults.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Boolean, Float, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nyayasetu.core.database import Base
from nyayasetu.core.errors import InsufficientFundsError, NyayaSetuError
from nyayasetu.core.utc import utc_now


DateTimeTZ = DateTime(timezone=True)


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Enums
# =============================================================================

class ApplicationType(str, enum.Enum):
    """Relief schemes a grievance can be filed under."""
    ATROCITY = "atrocity"                        # SC/ST (Prevention of Atrocities) Act relief
    INTERCASTE_MARRIAGE = "intercaste_marriage"  # Intercaste marriage incentive


class GrievanceStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"   # at least one phase paid out
    CLOSED = "closed"         # every phase paid and confirmed by the victim


class FundSource(str, enum.Enum):
    MINISTRY = "Ministry of Social Justice"
    STATE_WELFARE = "State Welfare Department"
    DISTRICT_TREASURY = "District Treasury"
    CENTRAL_FUND = "Central Fund"


class AllocationStatus(str, enum.Enum):
    SANCTIONED = "sanctioned"
    ALLOCATED = "allocated"
    PARTIALLY_UTILIZED = "partially_utilized"
    FULLY_UTILIZED = "fully_utilized"
    LAPSED = "lapsed"


# =============================================================================
# Users & Sessions
# =============================================================================

class User(Base):
    """Portal account: victim, district officer or administrator."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    full_name: Mapped[str] = mapped_column(String(150))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default="victim", index=True)
    district: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    sessions: Mapped[list["Session"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class Session(Base):
    """Login session. Only the SHA-256 of the bearer token is stored."""
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(DateTimeTZ)

    user: Mapped["User"] = relationship(back_populates="sessions")


# =============================================================================
# Grievances (cases)
# =============================================================================

class Grievance(Base):
    """
    A relief application.

    Lifecycle:
        submitted -> under_review -> approved -> disbursed -> closed
                                  \\-> rejected
    """
    __tablename__ = "grievances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    application_type: Mapped[str] = mapped_column(String(30), default=ApplicationType.ATROCITY.value)

    # Applicant
    applicant_name: Mapped[str] = mapped_column(String(150))
    applicant_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    caste_category: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # SC, ST, OBC...
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    district: Mapped[str] = mapped_column(String(100), index=True)
    state: Mapped[str] = mapped_column(String(100))

    # Incident (atrocity cases)
    incident_date: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    incident_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fir_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    police_station: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)

    # Marriage (intercaste applications)
    spouse_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    spouse_caste_category: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    marriage_date: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    marriage_registration_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Review
    status: Mapped[str] = mapped_column(String(20), default=GrievanceStatus.SUBMITTED.value, index=True)
    approved_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    officer_remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    disbursements: Mapped[list["Disbursement"]] = relationship(
        back_populates="grievance",
        cascade="all, delete-orphan",
        order_by="Disbursement.phase",
        lazy="selectin",
    )
    documents: Mapped[list["Document"]] = relationship(back_populates="grievance", cascade="all, delete-orphan")

    @property
    def total_disbursed(self) -> int:
        return sum(d.amount or 0 for d in self.disbursements)


class Disbursement(Base):
    """One phase of a relief payment."""
    __tablename__ = "disbursements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    grievance_id: Mapped[str] = mapped_column(String(36), ForeignKey("grievances.id"), index=True)
    phase: Mapped[int] = mapped_column(Integer)
    percentage: Mapped[int] = mapped_column(Integer)
    amount: Mapped[int] = mapped_column(Integer)
    transaction_id: Mapped[str] = mapped_column(String(64))
    allocation_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("fund_allocations.id"), nullable=True)
    disbursed_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    disbursed_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    verified_by_victim: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    grievance: Mapped["Grievance"] = relationship(back_populates="disbursements")


# =============================================================================
# Documents
# =============================================================================

class Document(Base):
    """Supporting document attached to a grievance."""
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    grievance_id: Mapped[str] = mapped_column(String(36), ForeignKey("grievances.id"), index=True)
    document_type: Mapped[str] = mapped_column(String(40), index=True)

    original_file_name: Mapped[str] = mapped_column(String(255))
    storage_file_id: Mapped[str] = mapped_column(String(300))
    storage_folder: Mapped[str] = mapped_column(String(500))
    mime_type: Mapped[str] = mapped_column(String(100))
    file_size: Mapped[int] = mapped_column(Integer)
    uploaded_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"))

    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_skipped: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="active", index=True)  # active, deleted
    uploaded_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    grievance: Mapped["Grievance"] = relationship(back_populates="documents")
    uploader: Mapped["User"] = relationship(lazy="joined")

    @classmethod
    async def find_by_grievance(cls, db: AsyncSession, grievance_id: str) -> list["Document"]:
        """Active documents for a grievance, newest first."""
        result = await db.execute(
            select(cls)
            .where(cls.grievance_id == grievance_id, cls.status == "active")
            .order_by(cls.uploaded_at.desc())
        )
        return list(result.scalars().all())

    @classmethod
    async def find_by_type(cls, db: AsyncSession, grievance_id: str, document_type: str) -> Optional["Document"]:
        result = await db.execute(
            select(cls).where(
                cls.grievance_id == grievance_id,
                cls.document_type == document_type,
                cls.status == "active",
            )
        )
        return result.scalars().first()

    def soft_delete(self) -> None:
        self.status = "deleted"
        self.deleted_at = utc_now()


# =============================================================================
# Fund Allocations
# =============================================================================

class FundAllocation(Base):
    """
    Funds sanctioned by the Ministry / State and allocated to a district officer.

    Call recalculate() after changing sanctioned_amount or amount_utilized;
    it keeps amount_remaining and status consistent.
    """
    __tablename__ = "fund_allocations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    source: Mapped[str] = mapped_column(String(50))
    sanction_number: Mapped[str] = mapped_column(String(60), unique=True, index=True)
    sanction_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    sanctioned_amount: Mapped[int] = mapped_column(Integer)
    financial_year: Mapped[str] = mapped_column(String(10))  # e.g. "2024-25"
    district: Mapped[str] = mapped_column(String(100), index=True)
    state: Mapped[str] = mapped_column(String(100), index=True)
    allocated_to_officer: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)

    amount_utilized: Mapped[int] = mapped_column(Integer, default=0)
    amount_remaining: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=AllocationStatus.SANCTIONED.value, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)

    linked_cases: Mapped[list["FundLinkedCase"]] = relationship(
        back_populates="allocation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    officer: Mapped[Optional["User"]] = relationship(lazy="joined")

    def recalculate(self) -> None:
        utilized = self.amount_utilized or 0
        self.amount_utilized = utilized
        self.amount_remaining = self.sanctioned_amount - utilized

        if utilized == 0:
            self.status = (
                AllocationStatus.ALLOCATED.value if self.allocated_to_officer
                else AllocationStatus.SANCTIONED.value
            )
        elif self.amount_remaining > 0:
            self.status = AllocationStatus.PARTIALLY_UTILIZED.value
        else:
            self.status = AllocationStatus.FULLY_UTILIZED.value
        self.updated_at = utc_now()

    def utilize(self, case_id: str, grievance_id: Optional[str], amount: int) -> "FundLinkedCase":
        """Draw amount for a case. Raises InsufficientFundsError if it does not fit."""
        if amount <= 0:
            raise NyayaSetuError("Amount must be positive")
        if amount > self.amount_remaining:
            raise InsufficientFundsError(
                "Insufficient funds in this allocation",
                amountRemaining=self.amount_remaining,
                requested=amount,
            )

        self.amount_utilized = (self.amount_utilized or 0) + amount
        link = FundLinkedCase(
            case_id=case_id,
            grievance_id=grievance_id,
            amount_disbursed=amount,
            disbursed_at=utc_now(),
        )
        self.linked_cases.append(link)
        self.recalculate()
        return link

    @classmethod
    async def get_district_summary(cls, db: AsyncSession, district: str) -> dict:
        result = await db.execute(
            select(
                func.coalesce(func.sum(cls.sanctioned_amount), 0),
                func.coalesce(func.sum(cls.amount_utilized), 0),
                func.coalesce(func.sum(cls.amount_remaining), 0),
                func.count(cls.id),
            ).where(cls.district == district)
        )
        sanctioned, utilized, remaining, count = result.one()
        return {
            "district": district,
            "totalSanctioned": int(sanctioned),
            "totalUtilized": int(utilized),
            "totalRemaining": int(remaining),
            "allocationsCount": int(count),
        }


class FundLinkedCase(Base):
    """A disbursement drawn from an allocation."""
    __tablename__ = "fund_linked_cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    allocation_id: Mapped[str] = mapped_column(String(36), ForeignKey("fund_allocations.id"), index=True)
    case_id: Mapped[str] = mapped_column(String(30))
    grievance_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("grievances.id"), nullable=True)
    amount_disbursed: Mapped[int] = mapped_column(Integer)
    disbursed_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    allocation: Mapped["FundAllocation"] = relationship(back_populates="linked_cases")
