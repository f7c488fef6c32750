from datetime import date
from decimal import Decimal

from django.test import TestCase

from core.models import Installment
from core.services.late_fees import apply_late_fee, overdue_installments, recalculate_late_fees
from core.services.reconciliation import upload_voucher
from core.tests.helpers import LedgerFixturesMixin


class LateFeeTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment = self.make_enrollment()
        self.first, self.second, self.third = self.installments(self.enrollment)

    def test_no_fee_inside_grace_period(self):
        # échéance 10/01 + 5 jours de grâce => 15/01 inclus
        self.assertFalse(apply_late_fee(self.first, today=date(2025, 1, 15)))
        self.first.refresh_from_db()
        self.assertEqual(self.first.late_fee, Decimal("0.00"))
        self.assertEqual(self.first.status, Installment.STATUS_PENDING)

    def test_fee_after_grace_period(self):
        self.assertTrue(apply_late_fee(self.first, today=date(2025, 1, 25)))
        self.first.refresh_from_db()

        self.assertEqual(self.first.days_late(date(2025, 1, 25)), 10)
        self.assertEqual(self.first.late_fee, Decimal("5.00"))
        self.assertEqual(self.first.status, Installment.STATUS_OVERDUE)
        self.assertEqual(self.first.remaining_amount, Decimal("305.00"))
        self.assertEqual(self.first.total_due, Decimal("305.00"))

    def test_recalculate_counts_changed_rows(self):
        self.assertEqual(recalculate_late_fees(self.enrollment, today=date(2025, 1, 25)), 1)
        # relancer le même jour ne change rien
        self.assertEqual(recalculate_late_fees(self.enrollment, today=date(2025, 1, 25)), 0)
        self.assertEqual(recalculate_late_fees(self.enrollment, today=date(2025, 2, 20)), 2)

        self.first.refresh_from_db()
        self.second.refresh_from_db()
        # 36 jours (15/01 -> 20/02) / 5 jours (15/02 -> 20/02)
        self.assertEqual(self.first.late_fee, Decimal("18.00"))
        self.assertEqual(self.second.late_fee, Decimal("2.50"))

    def test_fee_frozen_once_payment_reported(self):
        apply_late_fee(self.first, today=date(2025, 1, 25))
        self.first.refresh_from_db()
        upload_voucher(self.first, None, None, "305.00", today=date(2025, 1, 25))
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_PAID)

        self.assertFalse(apply_late_fee(self.first, today=date(2025, 3, 1)))
        self.first.refresh_from_db()
        self.assertEqual(self.first.late_fee, Decimal("5.00"))

    def test_overdue_list(self):
        rows = list(overdue_installments(today=date(2025, 2, 20)))
        self.assertEqual([i.pk for i in rows], [self.first.pk, self.second.pk])

        rows = list(overdue_installments(from_date=date(2025, 2, 1), today=date(2025, 2, 20)))
        self.assertEqual([i.pk for i in rows], [self.second.pk])

    def test_is_overdue_ignores_settled_rows(self):
        self.first.status = Installment.STATUS_VERIFIED
        self.assertFalse(self.first.is_overdue(date(2025, 3, 1)))
        self.assertTrue(self.second.is_overdue(date(2025, 3, 1)))
