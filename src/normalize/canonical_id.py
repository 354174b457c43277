from __future__ import annotations

import hashlib
from typing import Any, Optional


def _normalize_text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    return " ".join(str(value).strip().lower().split())


def _normalize_national_id(value: Optional[Any]) -> str:
    text = _normalize_text(value)
    # Spreadsheet cells often turn ids into floats ("1712345678.0").
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text.replace(" ", "").replace("-", "")


def normalize_national_id(value: Optional[Any]) -> str:
    return _normalize_national_id(value)


def generate_record_id(*, student_id: Any, period_id: Any) -> str:
    """Build a deterministic record_id from the (student, period) identity pair."""

    payload = "|".join(
        [
            _normalize_national_id(student_id),
            _normalize_text(period_id),
        ]
    )
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()
