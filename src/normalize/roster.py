"""Roster loading and row validation ahead of cohort selection."""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from src.normalize.canonical_id import normalize_national_id
from src.normalize.schema import AcademicCondition, StudentRecord
from src.rank.policy import SelectionPolicy

logger = logging.getLogger(__name__)

ROSTER_COLUMNS = [
    "national_id",
    "first_name",
    "last_name",
    "university_email",
    "faculty",
    "career",
    "semester",
    "average_grade",
    "academic_condition",
]

# Normalized header variants (lowercase, no accents, single spaces).
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "national_id": ("national id", "cedula", "identificacion", "student id", "id"),
    "first_name": ("first name", "nombres", "nombre", "names"),
    "last_name": ("last name", "apellidos", "apellido", "surnames"),
    "university_email": (
        "university email",
        "correo",
        "correo institucional",
        "email",
        "institutional email",
    ),
    "faculty": ("faculty", "facultad"),
    "career": ("career", "carrera", "program", "programa"),
    "semester": ("semester", "semestre", "nivel"),
    "average_grade": ("average grade", "promedio", "average", "grade", "gpa"),
    "academic_condition": ("academic condition", "condicion", "condicion academica", "condition"),
}

UNKNOWN_FACULTY = "Unknown Faculty"
UNKNOWN_CAREER = "Unknown Career"
DEFAULT_CONDITION_LABEL = "Regular"

INVALID_EMAIL_DOMAIN = "INVALID_EMAIL_DOMAIN"
INVALID_GRADE = "INVALID_GRADE"
INVALID_SEMESTER = "INVALID_SEMESTER"
MISSING_NATIONAL_ID = "MISSING_NATIONAL_ID"
DUPLICATE_STUDENT = "DUPLICATE_STUDENT"

SUPPORTED_SUFFIXES = (".xlsx", ".csv", ".json", ".parquet")


class ValidationError(ValueError):
    """A roster row that cannot enter selection."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


@dataclass(slots=True)
class RosterValidationReport:
    total_rows: int = 0
    accepted_rows: int = 0
    discarded_rows: int = 0
    discard_reasons: Counter[str] = field(default_factory=Counter)
    discarded: list[dict[str, Any]] = field(default_factory=list)

    def record_discard(self, row_number: int, reason: str, message: str) -> None:
        self.discarded_rows += 1
        self.discard_reasons[reason] += 1
        self.discarded.append({"row": row_number, "reason": reason, "message": message})

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "accepted_rows": self.accepted_rows,
            "discarded_rows": self.discarded_rows,
            "discard_reasons": dict(sorted(self.discard_reasons.items())),
            "discarded": list(self.discarded),
        }


def _normalize_header(value: Any) -> str:
    if value is None:
        return ""
    text = unicodedata.normalize("NFKD", str(value))
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[_.#:%-]+", " ", text.strip().lower())
    return re.sub(r"\s+", " ", text).strip()


def normalize_roster_columns(df: pd.DataFrame) -> pd.DataFrame:
    lookup = {alias: target for target, aliases in COLUMN_ALIASES.items() for alias in aliases}
    lookup.update({_normalize_header(target): target for target in ROSTER_COLUMNS})

    renames: dict[Any, str] = {}
    for column in df.columns:
        target = lookup.get(_normalize_header(column))
        if target is not None and target not in renames.values():
            renames[column] = target

    normalized = df.rename(columns=renames)
    normalized = normalized.loc[:, ~normalized.columns.duplicated(keep="first")]
    for column in ROSTER_COLUMNS:
        if column not in normalized.columns:
            normalized[column] = None
    return normalized[ROSTER_COLUMNS]


def load_roster(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Roster file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".xlsx":
        # First sheet only, as exported by the registrar. Text keeps leading zeros in ids.
        return pd.read_excel(
            path, sheet_name=0, engine="openpyxl", dtype=str, keep_default_na=False
        )
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    if suffix == ".json":
        return pd.read_json(path, dtype=False)
    if suffix == ".parquet":
        return pd.read_parquet(path)

    raise ValueError(f"Unsupported roster format '{suffix}'. Use one of {', '.join(SUPPORTED_SUFFIXES)}")


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if value is pd.NA or value is pd.NaT:
        return ""
    return " ".join(str(value).strip().split())


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _clean_text(value).replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _parse_condition(label: str, policy: SelectionPolicy) -> AcademicCondition:
    if label.strip().lower() == policy.regular_label.strip().lower():
        return AcademicCondition.REGULAR
    return AcademicCondition.NON_REGULAR


def parse_student_row(row: Mapping[str, Any], policy: SelectionPolicy) -> StudentRecord:
    email = _clean_text(row.get("university_email")).lower()
    if not email.endswith(policy.email_suffix) or len(email) <= len(policy.email_suffix):
        raise ValidationError(
            INVALID_EMAIL_DOMAIN,
            f"Email '{email}' is not in the {policy.institutional_domain} domain.",
        )

    national_id = normalize_national_id(row.get("national_id"))
    if not national_id:
        raise ValidationError(MISSING_NATIONAL_ID, f"Row for {email} has no national id.")

    grade = _parse_number(row.get("average_grade"))
    if grade is None or grade < 0.0:
        raise ValidationError(
            INVALID_GRADE,
            f"Average grade {row.get('average_grade')!r} for {email} is not a valid number.",
        )

    semester = _parse_number(row.get("semester"))
    if semester is None or semester < 0 or not float(semester).is_integer():
        raise ValidationError(
            INVALID_SEMESTER,
            f"Semester {row.get('semester')!r} for {email} is not a whole number.",
        )

    condition_label = _clean_text(row.get("academic_condition")) or DEFAULT_CONDITION_LABEL
    return StudentRecord(
        national_id=national_id,
        first_name=_clean_text(row.get("first_name")),
        last_name=_clean_text(row.get("last_name")),
        university_email=email,
        faculty=_clean_text(row.get("faculty")) or UNKNOWN_FACULTY,
        career=_clean_text(row.get("career")) or UNKNOWN_CAREER,
        semester=int(semester),
        average_grade=grade,
        academic_condition=_parse_condition(condition_label, policy),
        condition_label=condition_label,
    )


def validate_roster(
    df: pd.DataFrame, policy: SelectionPolicy | None = None
) -> tuple[list[StudentRecord], RosterValidationReport]:
    effective_policy = policy or SelectionPolicy.baseline()
    normalized = normalize_roster_columns(df)
    report = RosterValidationReport(total_rows=len(normalized))

    students: list[StudentRecord] = []
    seen_ids: set[str] = set()
    for row_number, row in enumerate(normalized.to_dict(orient="records"), start=1):
        try:
            student = parse_student_row(row, effective_policy)
            if student.national_id in seen_ids:
                raise ValidationError(
                    DUPLICATE_STUDENT,
                    f"National id {student.national_id} appears more than once in the roster.",
                )
        except ValidationError as exc:
            report.record_discard(row_number, exc.reason, str(exc))
            logger.warning("Discarded roster row %d (%s): %s", row_number, exc.reason, exc)
            continue
        seen_ids.add(student.national_id)
        students.append(student)

    report.accepted_rows = len(students)
    logger.info(
        "Roster validated: total=%d accepted=%d discarded=%d",
        report.total_rows,
        report.accepted_rows,
        report.discarded_rows,
    )
    return students, report
