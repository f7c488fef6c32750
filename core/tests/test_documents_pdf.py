from datetime import date, datetime

from django.core import mail
from django.core.files.storage import default_storage
from django.test import TestCase
from django.utils import timezone

from core.models import Setting
from core.pdf.receipt import build_receipt_pdf_bytes, generate_payment_receipt
from core.pdf.schedule import build_schedule_pdf_bytes, generate_payment_schedule
from core.services.documents import (
    RECEIPT_TEMPLATE_KEY,
    receipt_variables,
    render_template,
    schedule_variables,
    template_for,
)
from core.services.mailing import send_receipt_email
from core.services.reconciliation import approve_voucher, upload_voucher
from core.tests.helpers import LedgerFixturesMixin
from core.utils_roles import ROLE_CASHIER

DAY_1 = date(2025, 1, 10)


class ReceiptTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()
        self.first = self.installments(self.enrollment)[0]
        self.voucher = upload_voucher(
            self.first, self.cashier, None, "300.00",
            payment_method="yape", transaction_reference="OP-7781", today=DAY_1,
        )

    def _approve(self):
        approve_voucher(self.voucher, self.cashier, today=DAY_1)
        self.voucher.refresh_from_db()

    def test_receipt_variables(self):
        self._approve()
        now = timezone.make_aware(datetime(2025, 1, 10, 9, 30))

        data = receipt_variables(self.voucher, now=now)

        self.assertEqual(data["numero_boleta"], f"BOL-202501-{self.voucher.pk:06d}")
        self.assertEqual(data["cajero"], "caja")
        self.assertEqual(data["concepto"], "Matrícula + Primera Cuota")
        self.assertEqual(data["monto_pagado"], "S/ 300.00")
        self.assertEqual(data["monto_palabras"], "TRESCIENTOS CON 00/100 SOLES")
        self.assertEqual(data["metodo_pago"], "Yape")
        self.assertEqual(data["referencia"], "OP-7781")
        self.assertEqual(data["codigo_matricula"], self.enrollment.enrollment_code)
        self.assertEqual(data["nivel_academico"], "Inglés Básico")

    def test_pending_voucher_has_no_receipt(self):
        self.assertIsNone(generate_payment_receipt(self.voucher))

    def test_generate_stores_pdf(self):
        self._approve()

        path = generate_payment_receipt(self.voucher)

        self.assertTrue(path.startswith(f"payment_receipts/{self.enrollment.student_id}/"))
        self.assertTrue(default_storage.exists(path))
        with default_storage.open(path, "rb") as fh:
            self.assertTrue(fh.read().startswith(b"%PDF"))
        self.voucher.refresh_from_db()
        self.assertEqual(self.voucher.receipt_path, path)

    def test_receipt_template_is_rendered(self):
        Setting.set(RECEIPT_TEMPLATE_KEY, "Pago de {{nombre_estudiante}} ({{concepto}})", type="template")
        self._approve()

        text = render_template(template_for(RECEIPT_TEMPLATE_KEY), receipt_variables(self.voucher))

        self.assertEqual(text, "Pago de Ana Quispe Mamani (Matrícula + Primera Cuota)")
        self.assertTrue(build_receipt_pdf_bytes(self.voucher).startswith(b"%PDF"))

    def test_send_receipt_email(self):
        self._approve()
        generate_payment_receipt(self.voucher)

        self.assertTrue(send_receipt_email(self.voucher))

        self.assertEqual(len(mail.outbox), 1)
        name, content, mimetype = mail.outbox[0].attachments[0]
        self.assertEqual(name, f"boleta_{self.voucher.receipt_number}.pdf")
        self.assertTrue(content.startswith(b"%PDF"))
        self.voucher.refresh_from_db()
        self.assertIsNotNone(self.voucher.receipt_sent_at)

    def test_custom_email_subject(self):
        Setting.set("payment_receipt_email_subject", "Tu boleta {{numero_boleta}}", type="email")
        self._approve()
        generate_payment_receipt(self.voucher)

        send_receipt_email(self.voucher)

        self.assertEqual(mail.outbox[0].subject, f"Tu boleta {self.voucher.receipt_number}")

    def test_student_without_email(self):
        student = self.enrollment.student
        student.email = ""
        student.save()
        self._approve()
        generate_payment_receipt(self.voucher)

        self.assertFalse(send_receipt_email(self.voucher))
        self.assertEqual(mail.outbox, [])


class ScheduleDocumentTests(LedgerFixturesMixin, TestCase):
    def setUp(self):
        self.cashier = self.make_user("caja", ROLE_CASHIER)
        self.enrollment = self.make_enrollment()
        self.student = self.enrollment.student
        first, second, _ = self.installments(self.enrollment)

        v = upload_voucher(first, self.cashier, None, "300.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)
        v = upload_voucher(second, self.cashier, None, "100.00", today=DAY_1)
        approve_voucher(v, self.cashier, today=DAY_1)

    def test_schedule_variables(self):
        data = schedule_variables(self.student, self.enrollment)

        self.assertEqual(data["nombre_asesor"], "No asignado")
        self.assertEqual(data["monto_total"], "S/ 900.00")
        # la cuota 2 (partielle) ne compte pas dans le total pagado
        self.assertEqual(data["total_pagado"], "S/ 300.00")
        self.assertEqual(data["total_pendiente"], "S/ 500.00")
        self.assertEqual(data["codigo_cronograma"][:5], "CRON-")
        self.assertIn("Cuota Segunda", data["tabla_cuotas"])

    def test_advisor_name(self):
        self.student.registered_by = self.make_user("asesor", first_name="Luis", last_name="Rojas")
        self.student.save()

        data = schedule_variables(self.student, self.enrollment)

        self.assertEqual(data["nombre_asesor"], "Luis Rojas")

    def test_build_and_generate(self):
        self.assertTrue(build_schedule_pdf_bytes(self.student, self.enrollment).startswith(b"%PDF"))

        path = generate_payment_schedule(self.student)
        self.assertTrue(path.startswith("payment_schedules/cronograma_pagos_"))
        self.assertTrue(default_storage.exists(path))

    def test_no_active_enrollment(self):
        other = self.make_student(document_number="70000009")
        self.assertIsNone(generate_payment_schedule(other))
