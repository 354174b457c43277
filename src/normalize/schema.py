from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Optional


class AcademicCondition(StrEnum):
    REGULAR = "REGULAR"
    NON_REGULAR = "NON_REGULAR"


class RejectionReason(StrEnum):
    NOT_REGULAR = "NOT_REGULAR"
    BELOW_CUTOFF = "BELOW_CUTOFF"


class AwardStatus(StrEnum):
    """Wire-level status vocabulary of a scholarship record."""

    SELECTED = "SELECTED"
    EXCLUDED = "EXCLUDED"
    DOCS_UPLOADED = "DOCS_UPLOADED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    APPROVED = "APPROVED"
    CONTRACT_GENERATED = "CONTRACT_GENERATED"
    CONTRACT_UPLOADED = "CONTRACT_UPLOADED"
    CONTRACT_REJECTED = "CONTRACT_REJECTED"
    READY_FOR_PAYMENT = "READY_FOR_PAYMENT"
    PAID = "PAID"


class DocumentType(StrEnum):
    BANK_CERT = "BANK_CERT"
    CONTRACT_UNSIGNED = "CONTRACT_UNSIGNED"
    CONTRACT_SIGNED = "CONTRACT_SIGNED"
    PAYMENT_RECEIPT = "PAYMENT_RECEIPT"


@dataclass(frozen=True, slots=True)
class StudentRecord:
    """One validated roster row."""

    national_id: str
    first_name: str
    last_name: str
    university_email: str
    faculty: str
    career: str
    semester: int
    average_grade: float
    academic_condition: AcademicCondition
    condition_label: str = ""

    @property
    def is_regular(self) -> bool:
        return self.academic_condition is AcademicCondition.REGULAR

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(frozen=True, slots=True)
class SelectionDecision:
    student: StudentRecord
    is_selected: bool
    cutoff_grade_used: Optional[float]
    rejection_reason: Optional[RejectionReason]


@dataclass(frozen=True, slots=True)
class CohortSummary:
    career: str
    faculty: str
    total_count: int
    regular_count: int
    cutoff_count: int
    cutoff_grade: Optional[float]
    selected_count: int

    @property
    def tie_extension(self) -> int:
        return max(self.selected_count - self.cutoff_count, 0)


@dataclass(frozen=True, slots=True)
class ScholarshipRecord:
    """Long-lived award record; `status` only changes through lifecycle transitions."""

    record_id: str
    student_id: str
    period_id: str
    career_id: str
    faculty: str
    average_grade: float
    status: AwardStatus
    rejection_reason: Optional[str] = None
    bank_account_number: Optional[str] = None
    payment_date: Optional[date] = None
    rejected_evidence_version: Optional[int] = None
    version: int = 1
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (AwardStatus.PAID, AwardStatus.EXCLUDED)


@dataclass(frozen=True, slots=True)
class DocumentEvidence:
    record_id: str
    document_type: DocumentType
    version: int
    uri: Optional[str]
    attached_at: datetime
