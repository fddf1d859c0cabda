from __future__ import annotations

from decimal import Decimal

from django.test import SimpleTestCase

from apps.audits.domain.scoring import AuditStatus, calculate_status


class CalculateStatusTests(SimpleTestCase):
    def test_score_at_lower_boundary_is_approved(self):
        self.assertEqual(calculate_status(75, 80, 5), AuditStatus.APPROVED)

    def test_score_below_boundary_is_rejected(self):
        self.assertEqual(calculate_status(74, 80, 5), AuditStatus.REJECTED)

    def test_exact_target_without_tolerance_is_approved(self):
        self.assertEqual(calculate_status(80, 80, 0), "approved")

    def test_default_tolerance_applies(self):
        self.assertEqual(calculate_status(Decimal("75.0"), 80), "approved")
        self.assertEqual(calculate_status(Decimal("74.99"), 80), "rejected")

    def test_fractional_scores_do_not_drift(self):
        self.assertEqual(calculate_status(0.3, 0.4, 0.1), "approved")
