# core/services/mailing.py
import logging
from datetime import timedelta

from django.conf import settings
from django.core.files.storage import default_storage
from django.core.mail import EmailMessage
from django.utils import timezone

from core.models import InstallmentVoucher, Setting
from core.services.documents import receipt_variables, render_template

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Boleta de pago {{numero_boleta}} - {{concepto}}"
DEFAULT_BODY = (
    "Hola {{nombre_estudiante}},\n\n"
    "Hemos verificado tu pago de {{monto_pagado}} correspondiente a {{concepto}} "
    "(matrícula {{codigo_matricula}}).\n"
    "Adjuntamos tu boleta de pago {{numero_boleta}}.\n\n"
    "Gracias,\n{{nombre_escuela}}"
)


def send_receipt_email(voucher: InstallmentVoucher) -> bool:
    """
    Envoie la boleta par e-mail à l'étudiant. Lève l'exception SMTP
    (la task Celery gère les retries).
    """
    student = voucher.installment.enrollment.student
    if not student.email:
        logger.warning("Boleta no enviada: estudiante=%s sin correo (voucher=%s)", student.pk, voucher.pk)
        return False

    if not voucher.receipt_path or not default_storage.exists(voucher.receipt_path):
        logger.warning("Boleta no enviada: voucher=%s sin PDF", voucher.pk)
        return False

    variables = receipt_variables(voucher)
    subject = render_template(Setting.get("payment_receipt_email_subject", DEFAULT_SUBJECT), variables)
    body = render_template(Setting.get("payment_receipt_email_body", DEFAULT_BODY), variables)

    msg = EmailMessage(
        subject=subject.strip(),
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[student.email],
    )
    with default_storage.open(voucher.receipt_path, "rb") as fh:
        msg.attach(f"boleta_{voucher.receipt_number or voucher.pk}.pdf", fh.read(), "application/pdf")
    msg.send(fail_silently=False)

    voucher.receipt_sent_at = timezone.now()
    voucher.save(update_fields=["receipt_sent_at"])

    logger.info("Boleta enviada: voucher=%s a=%s", voucher.pk, student.email)
    return True


def queue_receipt(voucher_id: int):
    """
    Met en file la génération + l'envoi de la boleta (appelé après commit).
    Un broker indisponible ne doit pas casser l'approbation.
    """
    from core.tasks import send_payment_receipt

    try:
        send_payment_receipt.delay(voucher_id)
    except Exception:
        logger.error("No se pudo encolar la boleta: voucher=%s", voucher_id, exc_info=True)


def pending_receipts(since=None):
    qs = InstallmentVoucher.objects.filter(
        status=InstallmentVoucher.STATUS_APPROVED,
        receipt_sent_at__isnull=True,
        installment__enrollment__student__email__gt="",
    )
    if since:
        qs = qs.filter(reviewed_at__gte=since)
    return qs.order_by("reviewed_at", "id")


def send_pending_receipts(days: int = None) -> int:
    since = timezone.now() - timedelta(days=days) if days else None
    count = 0
    for voucher_id in pending_receipts(since).values_list("id", flat=True):
        queue_receipt(voucher_id)
        count += 1
    return count
