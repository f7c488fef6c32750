from datetime import date
from decimal import Decimal
from io import StringIO

from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from core.models import Installment, InstallmentReminder
from core.services.reconciliation import approve_voucher, upload_voucher
from core.tests.helpers import LedgerFixturesMixin
from core.utils_roles import ROLE_CASHIER


def run(*args, **kwargs):
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


class ReconcileCommandTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment_date = timezone.localdate()
        self.enrollment = self.make_enrollment()
        self.first = self.installments(self.enrollment)[0]
        Installment.objects.filter(pk=self.first.pk).update(paid_amount=Decimal("999.00"), status="verified")

    def test_dry_run_then_fix(self):
        out = run("reconcile_installments", "--dry-run")
        self.assertIn("OK — 1 écarts détectés (dry-run).", out)
        self.first.refresh_from_db()
        self.assertEqual(self.first.paid_amount, Decimal("999.00"))

        out = run("reconcile_installments", "--enrollment", str(self.enrollment.pk))
        self.assertIn("estado verified -> pending", out)
        self.first.refresh_from_db()
        self.assertEqual(self.first.paid_amount, Decimal("0.00"))

    def test_unknown_enrollment(self):
        with self.assertRaises(CommandError):
            run("reconcile_installments", "--enrollment", "999999")


class RemindOverdueCommandTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        today = timezone.localdate()
        self.enrollment = self.make_enrollment(enrollment_date=date(today.year - 1, today.month, 1))

    def test_one_reminder_per_day(self):
        out = run("remind_overdue_installments")
        self.assertIn("Relances créées: 3 (e-mails: 0)", out)
        self.assertEqual(InstallmentReminder.objects.filter(channel="notice").count(), 3)

        out = run("remind_overdue_installments")
        self.assertIn("Relances créées: 0", out)

    def test_email_reminders(self):
        out = run("remind_overdue_installments", "--email")

        self.assertIn("e-mails: 3", out)
        self.assertEqual(len(mail.outbox), 3)
        self.assertEqual(mail.outbox[0].to, ["ana.quispe@example.com"])
        self.assertIn(self.enrollment.enrollment_code, mail.outbox[0].subject)


class FixDatesCommandTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment = self.make_enrollment()
        student = self.enrollment.student
        student.payment_date = date(2025, 1, 20)
        student.save()

    def test_dry_run_keeps_dates(self):
        out = run("fix_installment_dates", "--dry-run")

        self.assertIn("cuota 2: 2025-02-10 -> 2025-02-20", out)
        self.assertIn("OK — 3 échéances à corriger (dry-run).", out)
        self.assertEqual(self.installments(self.enrollment)[0].due_date, date(2025, 1, 10))

    def test_fix(self):
        run("fix_installment_dates")

        rows = self.installments(self.enrollment)
        self.assertEqual([i.due_date for i in rows], [date(2025, 1, 20), date(2025, 2, 20), date(2025, 3, 20)])


class ReceiptCommandsTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.enrollment_date = timezone.localdate()
        cashier = self.make_user("caja", ROLE_CASHIER)
        enrollment = self.make_enrollment()
        first = self.installments(enrollment)[0]
        self.voucher = upload_voucher(first, cashier, None, "300.00")
        approve_voucher(self.voucher, cashier)

    def test_regenerate_receipts(self):
        out = run("regenerate_receipts")
        self.assertIn("Boletas générées: 1 (ignorées: 0)", out)

        out = run("regenerate_receipts", "--missing-only")
        self.assertIn("Boletas générées: 0 (ignorées: 1)", out)

    def test_send_pending_receipts(self):
        out = run("send_pending_receipts", "--days", "7")

        self.assertIn("Boletas en file: 1", out)
        self.assertEqual(len(mail.outbox), 1)
        self.voucher.refresh_from_db()
        self.assertIsNotNone(self.voucher.receipt_sent_at)

        out = run("send_pending_receipts")
        self.assertIn("Boletas en file: 0", out)
