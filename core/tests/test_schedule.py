from datetime import date
from decimal import Decimal

from django.test import TestCase

from core.models import Installment, PlanChange
from core.services.exceptions import PaymentError
from core.services.enrollment import create_enrollment
from core.services.reconciliation import approve_voucher, upload_voucher
from core.services.schedule import (
    change_plan,
    generate_installments,
    misdated_installments,
    sync_installments_with_plan,
)
from core.tests.helpers import LedgerFixturesMixin


class GenerateInstallmentsTests(LedgerFixturesMixin, TestCase):
    def test_enrollment_creates_schedule(self):
        enrollment = self.make_enrollment()
        rows = self.installments(enrollment)

        self.assertEqual(len(rows), 3)
        self.assertEqual([i.due_date for i in rows], [date(2025, 1, 10), date(2025, 2, 10), date(2025, 3, 10)])
        for inst in rows:
            self.assertEqual(inst.amount, Decimal("300.00"))
            self.assertEqual(inst.remaining_amount, Decimal("300.00"))
            self.assertEqual(inst.status, Installment.STATUS_PENDING)

    def test_enrollment_code(self):
        enrollment = self.make_enrollment()
        self.assertEqual(enrollment.enrollment_code, f"MAT-2025-{enrollment.pk:06d}")

    def test_student_payment_date_is_the_base(self):
        student = self.make_student(payment_date=date(2025, 1, 31))
        enrollment = self.make_enrollment(student=student)
        rows = self.installments(enrollment)
        self.assertEqual([i.due_date for i in rows], [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)])

    def test_generation_is_idempotent(self):
        enrollment = self.make_enrollment()
        self.assertEqual(generate_installments(enrollment), 0)
        self.assertEqual(enrollment.installments.count(), 3)

    def test_inactive_plan_is_refused(self):
        plan = self.make_plan(is_active=False)
        with self.assertRaises(PaymentError):
            create_enrollment(self.make_student(), plan, enrollment_date=self.enrollment_date)


class SyncWithPlanTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja")
        self.enrollment = self.make_enrollment()
        first = self.installments(self.enrollment)[0]
        v = upload_voucher(first, self.cashier, None, "300.00", today=date(2025, 1, 10))
        approve_voucher(v, self.cashier, today=date(2025, 1, 10))

    def test_change_plan_keeps_paid_installments(self):
        new_plan = self.make_plan(name="Plan Cuatrimestral", installments_count=4, monthly_amount=Decimal("350.00"))

        change = change_plan(self.enrollment, new_plan, changed_by=self.cashier, reason="Cambio de horario")
        rows = self.installments(self.enrollment)

        self.assertEqual(len(rows), 4)
        self.assertEqual(rows[0].amount, Decimal("300.00"))
        self.assertEqual(rows[0].status, Installment.STATUS_VERIFIED)
        self.assertEqual([i.amount for i in rows[1:]], [Decimal("350.00")] * 3)
        self.assertEqual(rows[3].due_date, date(2025, 4, 10))

        self.assertIsInstance(change, PlanChange)
        self.assertEqual(change.old_installments_count, 3)
        self.assertEqual(change.new_installments_count, 4)
        self.assertEqual(change.changed_by, self.cashier)

    def test_shorter_plan_deletes_untouched_installments(self):
        self.enrollment.payment_plan.installments_count = 2
        self.enrollment.payment_plan.save()

        stats = sync_installments_with_plan(self.enrollment.pk)

        self.assertEqual(stats["deleted"], 1)
        self.assertEqual(self.enrollment.installments.count(), 2)

    def test_plan_update_signal_resyncs_after_commit(self):
        plan = self.enrollment.payment_plan
        plan.monthly_amount = Decimal("320.00")
        with self.captureOnCommitCallbacks(execute=True):
            plan.save()

        rows = self.installments(self.enrollment)
        self.assertEqual(rows[0].amount, Decimal("300.00"))
        self.assertEqual(rows[1].amount, Decimal("320.00"))
        self.assertEqual(rows[2].amount, Decimal("320.00"))

    def test_misdated_installments_ignore_paid_rows(self):
        student = self.enrollment.student
        student.payment_date = date(2025, 1, 20)
        student.save()

        wrong = misdated_installments(self.enrollment)

        self.assertEqual([i.installment_number for i, _ in wrong], [2, 3])
        self.assertEqual(wrong[0][1], date(2025, 2, 20))
