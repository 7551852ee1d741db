"""Keyword-based complaint severity classifier and SLA thresholds.

Pure-function module, NO database access.

Keyword sets are evaluated in fixed order (high, medium, low); the first set
with any substring hit wins, regardless of how many lower-tier keywords also
match. With no hit, the asset type's default severity applies.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from maintenance_dispatch.domain.enums import Severity

# ── Keyword tiers (order matters) ────────────────────────────────────────────

PRIORITY_KEYWORDS: list[tuple[Severity, tuple[str, ...]]] = [
    (Severity.HIGH, (
        "fire", "smoke", "spark", "danger", "emergency", "leak", "flood",
        "power outage", "shock", "broken security", "lock broken", "gas",
        "explosion", "burning", "critical", "injury", "safety",
    )),
    (Severity.MEDIUM, (
        "not working", "malfunction", "stuck", "slow", "noise", "internet",
        "wifi", "connection", "leaking", "drip", "ac not cooling", "heating",
        "appliance", "broken handle", "unavailable",
    )),
    (Severity.LOW, (
        "cosmetic", "paint", "scratch", "dirty", "suggestion", "minor",
        "flickering", "bulb", "chair", "furniture", "dust", "cleaning",
    )),
]

ASSET_DEFAULT_SEVERITY: dict[str, Severity] = {
    "projector": Severity.MEDIUM,
    "ac": Severity.MEDIUM,
    "computer": Severity.MEDIUM,
    "light": Severity.LOW,
    "water_cooler": Severity.HIGH,  # water on the floor spreads fast
    "other": Severity.LOW,
}

# Hours from creation to resolution
SLA_HOURS: dict[Severity, float] = {
    Severity.CRITICAL: 2,
    Severity.HIGH: 4,
    Severity.MEDIUM: 24,
    Severity.LOW: 48,
}


def classify_priority(
    title: Optional[str],
    description: Optional[str],
    asset_type: Optional[str] = None,
) -> Severity:
    """Map complaint text plus an asset/category hint to a severity level."""
    text = f"{title or ''} {description or ''}".lower()

    for severity, keywords in PRIORITY_KEYWORDS:
        for keyword in keywords:
            if keyword in text:
                return severity

    if asset_type:
        return ASSET_DEFAULT_SEVERITY.get(asset_type.strip().lower(), Severity.MEDIUM)
    return Severity.MEDIUM


def parse_severity(value) -> Severity:
    """Coerce a stored severity label to the enum; unknown labels read as medium."""
    if isinstance(value, Severity):
        return value
    try:
        return Severity(str(value).lower())
    except ValueError:
        return Severity.MEDIUM


def sla_hours_for(severity) -> float:
    return SLA_HOURS[parse_severity(severity)]


def hours_since(created_at: datetime, now: Optional[datetime] = None) -> float:
    """Elapsed hours between ``created_at`` and ``now``. Naive values are read as UTC."""
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - created_at).total_seconds() / 3600


def is_sla_breached(created_at: datetime, severity, now: Optional[datetime] = None) -> bool:
    """True once the elapsed time strictly exceeds the severity's SLA window."""
    return hours_since(created_at, now) > sla_hours_for(severity)
