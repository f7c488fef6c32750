"""
Tâches Celery: boletas de pago.

Retries contrôlés (3 max, backoff) et time limit de 5 minutes par envoi.
"""
import logging

from celery import shared_task

from core.models import InstallmentVoucher

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="core.send_payment_receipt",
    autoretry_for=(Exception,),
    retry_backoff=60,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 3},
    time_limit=300,
)
def send_payment_receipt(self, voucher_id: int):
    from core.pdf.receipt import generate_payment_receipt
    from core.services.mailing import send_receipt_email

    voucher = (
        InstallmentVoucher.objects
        .select_related(
            "installment__enrollment__student",
            "installment__enrollment__payment_plan__academic_level",
            "reviewed_by",
        )
        .filter(pk=voucher_id)
        .first()
    )
    if voucher is None:
        logger.warning("[%s] Voucher %s introuvable", self.request.id, voucher_id)
        return {"status": "missing", "voucher_id": voucher_id}

    if voucher.status != InstallmentVoucher.STATUS_APPROVED:
        logger.info("[%s] Voucher %s non approuvé, boleta ignorée", self.request.id, voucher_id)
        return {"status": "skipped", "voucher_id": voucher_id}

    if not voucher.receipt_path:
        path = generate_payment_receipt(voucher)
        if not path:
            raise RuntimeError(f"Boleta no generada para voucher {voucher_id}")

    if voucher.receipt_sent_at:
        return {"status": "already_sent", "voucher_id": voucher_id}

    sent = send_receipt_email(voucher)
    return {"status": "sent" if sent else "not_sent", "voucher_id": voucher_id}
