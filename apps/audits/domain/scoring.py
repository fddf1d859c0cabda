"""
Audit approval scoring.

PT: Aprovação de auditoria por pontuação com tolerância.
EN: Audit approval by score within a tolerance of the target.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum

DEFAULT_TOLERANCE = Decimal("5")


class AuditStatus(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


def calculate_status(score, target, tolerance=DEFAULT_TOLERANCE) -> str:
    """Approved when ``score >= target - tolerance``; the boundary approves."""
    threshold = Decimal(str(target)) - Decimal(str(tolerance))
    if Decimal(str(score)) >= threshold:
        return AuditStatus.APPROVED
    return AuditStatus.REJECTED
