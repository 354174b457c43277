from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

DEFAULT_INSTITUTIONAL_DOMAIN = "uce.edu.ec"


@dataclass(frozen=True, slots=True)
class SelectionPolicy:
    quota_fraction: float
    institutional_domain: str
    regular_label: str
    award_amount: float
    budget_total: float

    def __post_init__(self) -> None:
        quota = float(self.quota_fraction)
        if not math.isfinite(quota):
            raise ValueError("Selection quota_fraction must be finite.")
        if quota <= 0.0 or quota > 1.0:
            raise ValueError("Selection quota_fraction must be greater than 0.0 and at most 1.0.")

        domain = self.institutional_domain.strip().lstrip("@")
        if not domain or "@" in domain:
            raise ValueError("Selection institutional_domain must be a bare domain name.")

        if not self.regular_label.strip():
            raise ValueError("Selection regular_label must not be empty.")

        for field_name in ("award_amount", "budget_total"):
            value = float(getattr(self, field_name))
            if not math.isfinite(value) or value < 0.0:
                raise ValueError(f"Selection {field_name} must be a finite non-negative number.")

    @property
    def email_suffix(self) -> str:
        return "@" + self.institutional_domain.strip().lstrip("@").lower()

    def cutoff_count(self, regular_count: int) -> int:
        if regular_count <= 0:
            return 0
        # round() drops float noise such as 30 * 0.1 == 3.0000000000000004.
        return math.ceil(round(regular_count * self.quota_fraction, 9))

    @classmethod
    def baseline(cls) -> SelectionPolicy:
        return cls(
            quota_fraction=0.10,
            institutional_domain=DEFAULT_INSTITUTIONAL_DOMAIN,
            regular_label="regular",
            award_amount=400.0,
            budget_total=2_500_000.0,
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> SelectionPolicy:
        values = payload or {}
        baseline = cls.baseline()
        return cls(
            quota_fraction=float(values.get("quota_fraction", baseline.quota_fraction)),
            institutional_domain=str(
                values.get("institutional_domain", baseline.institutional_domain)
            ),
            regular_label=str(values.get("regular_label", baseline.regular_label)),
            award_amount=float(values.get("award_amount", baseline.award_amount)),
            budget_total=float(values.get("budget_total", baseline.budget_total)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "quota_fraction": self.quota_fraction,
            "institutional_domain": self.institutional_domain,
            "regular_label": self.regular_label,
            "award_amount": self.award_amount,
            "budget_total": self.budget_total,
        }


def load_policy(path: Path | None) -> SelectionPolicy:
    if path is None or not path.exists():
        return SelectionPolicy.baseline()
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"{path.name} must contain a JSON object.")
    return SelectionPolicy.from_mapping(payload)
