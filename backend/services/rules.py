"""
Règles partagées : validation des entrées, classification des manques,
score d'urgence.

Les seuils d'urgence sont une politique métier (UrgencyPolicy, issue des
Settings), pas des constantes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from backend.app.core.config import Settings, get_settings
from backend.app.core.exceptions import ValidationError
from backend.app.db.models.core_types import RequirementStatus, Urgency


def require_positive(value: int | None, field: str) -> int:
    if value is None:
        raise ValidationError(f"Missing: {field}", field=field)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if value <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    return value


def require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} required", field=field)
    return value.strip()


def shortage_of(required: int, available: int) -> int:
    return max(0, required - available)


def classify_shortage(shortage: int, reorder_level: int) -> RequirementStatus:
    """
    0                      -> sufficient
    0 < shortage <= RL     -> shortage
    shortage > RL          -> critical
    """
    if shortage <= 0:
        return RequirementStatus.sufficient
    if shortage <= reorder_level:
        return RequirementStatus.shortage
    return RequirementStatus.critical


@dataclass(frozen=True)
class UrgencyPolicy:
    critical_multiplier: int = 2
    high_multiplier: int = 1
    deadline_critical_days: int = 7
    deadline_high_days: int = 14

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "UrgencyPolicy":
        settings = settings or get_settings()
        return cls(
            critical_multiplier=settings.URGENCY_CRITICAL_MULTIPLIER,
            high_multiplier=settings.URGENCY_HIGH_MULTIPLIER,
            deadline_critical_days=settings.DEADLINE_CRITICAL_DAYS,
            deadline_high_days=settings.DEADLINE_HIGH_DAYS,
        )


def shortage_urgency(shortage: int, reorder_level: int, policy: UrgencyPolicy) -> Urgency:
    if shortage <= 0:
        return Urgency.low
    if shortage >= reorder_level * policy.critical_multiplier:
        return Urgency.critical
    if shortage >= reorder_level * policy.high_multiplier:
        return Urgency.high
    return Urgency.medium


def deadline_urgency(
    urgency: Urgency,
    deadline: date | None,
    today: date,
    policy: UrgencyPolicy,
) -> Urgency:
    """La proximité de l'échéance ne peut que RELEVER l'urgence."""
    if deadline is None:
        return urgency
    days_until = (deadline - today).days
    if days_until <= policy.deadline_critical_days:
        return Urgency.critical
    if days_until <= policy.deadline_high_days and urgency == Urgency.medium:
        return Urgency.high
    return urgency


def score_urgency(
    shortage: int,
    reorder_level: int,
    deadline: date | None = None,
    *,
    today: date | None = None,
    policy: UrgencyPolicy | None = None,
) -> Urgency:
    policy = policy or UrgencyPolicy.from_settings()
    base = shortage_urgency(shortage, reorder_level, policy)
    return deadline_urgency(base, deadline, today or date.today(), policy)


def stock_status(on_hand: int, reorder_level: int) -> str:
    if on_hand == 0:
        return "out_of_stock"
    if on_hand <= reorder_level:
        return "low_stock"
    if on_hand <= reorder_level * 1.5:
        return "normal"
    return "healthy"


def low_stock_urgency(on_hand: int, reorder_level: int) -> Urgency:
    """Urgence du réappro générique : % du seuil encore en stock."""
    if on_hand <= 0:
        return Urgency.critical
    if reorder_level <= 0:
        return Urgency.low
    pct = on_hand * 100 / reorder_level
    if pct < 25:
        return Urgency.critical
    if pct < 50:
        return Urgency.high
    if pct < 75:
        return Urgency.medium
    return Urgency.low
