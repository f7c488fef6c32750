from datetime import date
from decimal import Decimal

from django.core import mail
from django.test import TestCase

from core.models import Installment, InstallmentVoucher
from core.services.exceptions import AlreadyReviewed, NotAllowed, PaymentError
from core.services.reconciliation import (
    approve_voucher,
    available_balance,
    distribute_payment,
    mark_installment_verified,
    reconcile_installments,
    reject_voucher,
    replace_voucher,
    upload_voucher,
    verify_voucher,
)
from core.tests.helpers import LedgerFixturesMixin, voucher_file
from core.utils_roles import ROLE_CASHIER

DAY_1 = date(2025, 1, 10)
LATE = date(2025, 1, 25)


class UploadVoucherTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()
        self.first, self.second, self.third = self.installments(self.enrollment)

    def test_upload_reports_payment_without_touching_paid_amount(self):
        v = upload_voucher(self.first, self.cashier, voucher_file(), "300.00", today=DAY_1)
        self.first.refresh_from_db()

        self.assertEqual(v.status, InstallmentVoucher.STATUS_PENDING)
        self.assertEqual(v.payment_type, "full")
        self.assertTrue(v.voucher_file.name.endswith(".pdf"))
        self.assertEqual(self.first.status, Installment.STATUS_PAID)
        self.assertEqual(self.first.paid_amount, Decimal("0.00"))

    def test_amount_must_be_positive(self):
        with self.assertRaises(PaymentError):
            upload_voucher(self.first, self.cashier, None, "0", today=DAY_1)

    def test_amount_above_total_pending_is_refused(self):
        with self.assertRaises(PaymentError) as ctx:
            upload_voucher(self.first, self.cashier, None, "900.01", today=DAY_1)
        self.assertIn("900.00", ctx.exception.user_message)

    def test_pending_vouchers_reduce_available_balance(self):
        upload_voucher(self.first, self.cashier, None, "800.00", today=DAY_1)
        self.assertEqual(available_balance(self.enrollment, today=DAY_1), Decimal("100.00"))

        with self.assertRaises(PaymentError):
            upload_voucher(self.second, self.cashier, None, "200.00", today=DAY_1)

    def test_verified_installment_refuses_uploads(self):
        mark_installment_verified(self.first, self.cashier, True, today=DAY_1)
        with self.assertRaises(PaymentError):
            upload_voucher(self.first, self.cashier, None, "10.00", today=DAY_1)

    def test_replace_pending_voucher(self):
        v = upload_voucher(self.first, self.cashier, voucher_file(), "300.00", today=DAY_1)

        v = replace_voucher(v, self.cashier, voucher_file("nuevo.png"), declared_amount="250", today=DAY_1)

        self.assertEqual(v.declared_amount, Decimal("250.00"))
        self.assertEqual(v.payment_type, "partial")
        self.assertTrue(v.voucher_file.name.endswith(".png"))

    def test_replace_reviewed_voucher_is_refused(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)
        with self.assertRaises(AlreadyReviewed):
            replace_voucher(v, self.cashier, declared_amount="250", today=DAY_1)


class ReviewVoucherTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()
        self.first, self.second, self.third = self.installments(self.enrollment)

    def test_two_partial_payments_complete_the_installment(self):
        v1 = upload_voucher(self.first, self.cashier, None, "100.00", today=DAY_1)
        approve_voucher(v1, self.cashier, today=DAY_1)
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_PAID)
        self.assertEqual(self.first.payment_type, "partial")
        self.assertEqual(self.first.paid_amount, Decimal("100.00"))

        v2 = upload_voucher(self.first, self.cashier, None, "200.00", today=DAY_1)
        approve_voucher(v2, self.cashier, today=DAY_1)
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_VERIFIED)
        self.assertEqual(self.first.payment_type, "combined")
        self.assertEqual(self.first.remaining_amount, Decimal("0.00"))
        self.assertEqual(self.first.verified_by, self.cashier)

    def test_approval_sends_receipt_after_commit(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)

        with self.captureOnCommitCallbacks(execute=True):
            approve_voucher(v, self.cashier, today=DAY_1)

        v.refresh_from_db()
        self.assertTrue(v.receipt_number.startswith("BOL-"))
        self.assertTrue(v.receipt_path)
        self.assertIsNotNone(v.receipt_sent_at)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ana.quispe@example.com"])
        self.assertIn(v.receipt_number, mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].attachments[0][2], "application/pdf")

    def test_excess_spreads_to_next_installment(self):
        v = upload_voucher(self.first, self.cashier, None, "450.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)

        v.refresh_from_db()
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.third.refresh_from_db()

        self.assertEqual(v.verified_amount, Decimal("300.00"))
        self.assertTrue(v.applied_to_total)
        self.assertEqual(self.first.status, Installment.STATUS_VERIFIED)
        self.assertEqual(self.second.paid_amount, Decimal("150.00"))
        self.assertEqual(self.second.status, Installment.STATUS_PAID)
        self.assertEqual(self.third.paid_amount, Decimal("0.00"))

        extra = self.second.vouchers.get()
        self.assertEqual(extra.payment_source, InstallmentVoucher.SOURCE_DISTRIBUTED)
        self.assertEqual(extra.status, InstallmentVoucher.STATUS_APPROVED)

    def test_verified_amount_overrides_declared(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        approve_voucher(v, self.cashier, verified_amount="280", today=DAY_1)

        self.first.refresh_from_db()
        self.assertEqual(self.first.paid_amount, Decimal("280.00"))
        self.assertEqual(self.first.status, Installment.STATUS_PAID)

    def test_double_review_is_refused(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)

        with self.assertRaises(AlreadyReviewed) as ctx:
            approve_voucher(v, self.cashier, today=DAY_1)
        self.assertEqual(ctx.exception.status_code, 400)

        with self.assertRaises(AlreadyReviewed):
            reject_voucher(v, self.cashier, "Duplicado", today=DAY_1)

    def test_approval_on_covered_installment_is_refused(self):
        v1 = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        v2 = upload_voucher(self.first, self.cashier, None, "100.00", today=DAY_1)
        approve_voucher(v1, self.cashier, today=DAY_1)

        with self.assertRaises(PaymentError) as ctx:
            approve_voucher(v2, self.cashier, today=DAY_1)
        self.assertIn("cubierta", ctx.exception.user_message)

        v2.refresh_from_db()
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(v2.status, InstallmentVoucher.STATUS_PENDING)
        self.assertIsNone(v2.reviewed_at)
        self.assertEqual(self.first.paid_amount, Decimal("300.00"))
        self.assertEqual(self.first.status, Installment.STATUS_VERIFIED)
        self.assertEqual(self.second.paid_amount, Decimal("0.00"))

    def test_excess_above_enrollment_balance_is_refused(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)

        with self.assertRaises(PaymentError) as ctx:
            approve_voucher(v, self.cashier, verified_amount="1000", today=DAY_1)
        self.assertIn("verified_amount", ctx.exception.message_dict)
        self.assertIn("900.00", ctx.exception.user_message)

        v.refresh_from_db()
        self.assertEqual(v.status, InstallmentVoucher.STATUS_PENDING)
        self.assertIsNone(v.verified_amount)
        self.assertEqual(InstallmentVoucher.objects.count(), 1)
        for inst in self.installments(self.enrollment):
            self.assertEqual(inst.paid_amount, Decimal("0.00"))
        self.assertEqual(self.installments(self.enrollment)[0].status, Installment.STATUS_PAID)

    def test_reject_requires_reason(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        with self.assertRaises(PaymentError):
            reject_voucher(v, self.cashier, "   ", today=DAY_1)
        with self.assertRaises(PaymentError):
            reject_voucher(v, self.cashier, "x" * 501, today=DAY_1)

    def test_reject_returns_installment_to_pending(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        reject_voucher(v, self.cashier, "Voucher ilegible", today=DAY_1)

        v.refresh_from_db()
        self.first.refresh_from_db()
        self.assertEqual(v.status, InstallmentVoucher.STATUS_REJECTED)
        self.assertEqual(v.rejection_reason, "Voucher ilegible")
        self.assertEqual(self.first.status, Installment.STATUS_PENDING)

    def test_late_reject_returns_installment_to_overdue(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        reject_voucher(v, self.cashier, "Monto no coincide", today=LATE)

        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_OVERDUE)
        self.assertEqual(self.first.late_fee, Decimal("5.00"))

    def test_cashier_entry_point_requires_enrolled_student(self):
        enrollment = self.make_enrollment(
            student=self.make_student(document_number="70000002"), verified=False,
        )
        inst = self.installments(enrollment)[0]
        v = upload_voucher(inst, self.cashier, None, "300.00", today=DAY_1)

        with self.assertRaises(NotAllowed) as ctx:
            verify_voucher(v, self.cashier, "approve", today=DAY_1)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_cashier_entry_point_dispatches(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        verify_voucher(v, self.cashier, "reject", reason="Sin referencia", today=DAY_1)
        v.refresh_from_db()
        self.assertEqual(v.status, InstallmentVoucher.STATUS_REJECTED)

        with self.assertRaises(PaymentError):
            verify_voucher(v, self.cashier, "archive", today=DAY_1)


class DistributedPaymentTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()

    def test_oldest_installment_first(self):
        result = distribute_payment(self.enrollment, "450", registered_by=self.cashier, today=DAY_1)
        first, second, third = self.installments(self.enrollment)

        self.assertEqual(result["applied"], Decimal("450.00"))
        self.assertEqual(result["remaining"], Decimal("0.00"))
        self.assertEqual([d["applied"] for d in result["distribution"]], [Decimal("300.00"), Decimal("150.00")])
        self.assertEqual(len(result["vouchers"]), 2)

        self.assertEqual(first.status, Installment.STATUS_VERIFIED)
        self.assertEqual(second.status, Installment.STATUS_PAID)
        self.assertEqual(third.status, Installment.STATUS_PENDING)

    def test_amount_above_total_is_refused(self):
        with self.assertRaises(PaymentError):
            distribute_payment(self.enrollment, "900.01", registered_by=self.cashier, today=DAY_1)
        with self.assertRaises(PaymentError):
            distribute_payment(self.enrollment, "-5", registered_by=self.cashier, today=DAY_1)

    def test_late_fee_included_in_what_is_owed(self):
        result = distribute_payment(self.enrollment, "305.00", registered_by=self.cashier, today=LATE)
        first = self.installments(self.enrollment)[0]

        self.assertEqual(len(result["vouchers"]), 1)
        self.assertEqual(first.late_fee, Decimal("5.00"))
        self.assertEqual(first.status, Installment.STATUS_VERIFIED)


class ManualVerificationTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()
        self.first = self.installments(self.enrollment)[0]

    def test_verify_completes_with_cashier_voucher(self):
        mark_installment_verified(self.first, self.cashier, True, today=DAY_1)
        self.first.refresh_from_db()

        self.assertEqual(self.first.status, Installment.STATUS_VERIFIED)
        v = self.first.vouchers.get()
        self.assertEqual(v.payment_source, InstallmentVoucher.SOURCE_CASHIER)
        self.assertEqual(v.declared_amount, Decimal("300.00"))

    def test_unverify_rejects_cashier_vouchers(self):
        mark_installment_verified(self.first, self.cashier, True, today=DAY_1)
        mark_installment_verified(self.first, self.cashier, False, today=DAY_1)
        self.first.refresh_from_db()

        self.assertEqual(self.first.status, Installment.STATUS_PENDING)
        self.assertEqual(self.first.paid_amount, Decimal("0.00"))
        self.assertIsNone(self.first.verified_at)
        self.assertEqual(self.first.vouchers.get().status, InstallmentVoucher.STATUS_REJECTED)

    def test_unverify_puts_student_vouchers_back_in_review(self):
        v = upload_voucher(self.first, self.cashier, None, "300.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)

        mark_installment_verified(self.first, self.cashier, False, today=DAY_1)
        v.refresh_from_db()
        self.first.refresh_from_db()

        self.assertEqual(v.status, InstallmentVoucher.STATUS_PENDING)
        self.assertEqual(self.first.status, Installment.STATUS_PAID)


class InstallmentStatusTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment = self.make_enrollment()
        self.first = self.installments(self.enrollment)[0]

    def test_zero_amount_installment_is_not_verified(self):
        Installment.objects.filter(pk=self.first.pk).update(amount=Decimal("0.00"), late_fee=Decimal("0.00"))
        self.first.refresh_from_db()

        self.first.refresh_statut(today=DAY_1)

        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_PENDING)
        self.assertIsNone(self.first.verified_at)
        self.assertIsNone(self.first.payment_type)

    def test_cancelled_installment_keeps_its_status(self):
        Installment.objects.filter(pk=self.first.pk).update(status=Installment.STATUS_CANCELLED)
        self.first.refresh_from_db()

        self.first.refresh_statut(today=LATE)

        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Installment.STATUS_CANCELLED)
        self.assertEqual(self.first.remaining_amount, Decimal("300.00"))


class ReconcileTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment = self.make_enrollment()
        self.first = self.installments(self.enrollment)[0]
        Installment.objects.filter(pk=self.first.pk).update(paid_amount=Decimal("999.00"), status="verified")

    def test_dry_run_reports_without_saving(self):
        drifts = reconcile_installments(dry_run=True, today=DAY_1)

        self.assertEqual(len(drifts), 1)
        self.assertEqual(drifts[0]["installment_id"], self.first.pk)
        self.assertEqual(drifts[0]["after"]["status"], Installment.STATUS_PENDING)

        self.first.refresh_from_db()
        self.assertEqual(self.first.paid_amount, Decimal("999.00"))

    def test_fix_rewrites_from_approved_vouchers(self):
        reconcile_installments(today=DAY_1)

        self.first.refresh_from_db()
        self.assertEqual(self.first.paid_amount, Decimal("0.00"))
        self.assertEqual(self.first.status, Installment.STATUS_PENDING)
        self.assertEqual(reconcile_installments(today=DAY_1), [])
