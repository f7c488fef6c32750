# core/services/late_fees.py
import logging
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone

from core.models import Installment

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def compute_late_fee(amount, late_fee_percentage, days_late: int) -> Decimal:
    """
    Mora = montant x (% / 100) / 30 x jours de retard (après la grâce).
    """
    if days_late <= 0:
        return ZERO
    amount = Decimal(str(amount or "0"))
    pct = Decimal(str(late_fee_percentage or "0"))
    fee = amount * pct / Decimal("100") / Decimal("30") * Decimal(days_late)
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_late_fee(installment: Installment, today=None, save=True) -> bool:
    """
    Recalcule la mora d'une cuota encore ouverte (pending / overdue).
    ✅ une cuota payée, vérifiée ou annulée garde sa mora figée
    Retourne True si la ligne a changé.
    """
    if installment.status not in Installment.OPEN_STATUSES:
        return False

    today = today or timezone.localdate()
    plan = installment.enrollment.payment_plan

    if installment.is_past_grace(today):
        days = installment.days_late(today)
        new_fee = compute_late_fee(installment.amount, plan.late_fee_percentage, days)
        new_status = Installment.STATUS_OVERDUE
    else:
        new_fee = ZERO
        new_status = Installment.STATUS_PENDING

    paid = installment.paid_amount or ZERO
    new_remaining = max((installment.amount or ZERO) + new_fee - paid, ZERO)

    changed = (
        new_fee != (installment.late_fee or ZERO)
        or new_status != installment.status
        or new_remaining != (installment.remaining_amount or ZERO)
    )
    if not changed:
        return False

    installment.late_fee = new_fee
    installment.status = new_status
    installment.remaining_amount = new_remaining
    if save:
        installment.save(update_fields=["late_fee", "status", "remaining_amount"])
    return True


@transaction.atomic
def recalculate_late_fees(enrollment, today=None) -> int:
    today = today or timezone.localdate()
    updated = 0
    qs = (
        enrollment.installments
        .select_related("enrollment__payment_plan")
        .filter(status__in=Installment.OPEN_STATUSES)
        .select_for_update()
    )
    for inst in qs:
        if apply_late_fee(inst, today=today):
            updated += 1

    if updated:
        logger.info("Mora recalculada: matrícula=%s cuotas=%s", enrollment.pk, updated)
    return updated


@transaction.atomic
def recalculate_all_late_fees(today=None) -> int:
    today = today or timezone.localdate()
    updated = 0
    qs = (
        Installment.objects
        .select_related("enrollment__payment_plan")
        .filter(status__in=Installment.OPEN_STATUSES, due_date__lt=today)
        .exclude(enrollment__status="cancelled")
        .select_for_update()
    )
    for inst in qs:
        if apply_late_fee(inst, today=today):
            updated += 1
    return updated


def overdue_installments(from_date=None, to_date=None, today=None):
    """
    Cuotas en retard (mora à jour), triées par échéance.
    """
    today = today or timezone.localdate()
    recalculate_all_late_fees(today=today)

    qs = (
        Installment.objects
        .select_related("enrollment__student", "enrollment__payment_plan")
        .filter(status=Installment.STATUS_OVERDUE)
        .exclude(enrollment__status="cancelled")
    )
    if from_date:
        qs = qs.filter(due_date__gte=from_date)
    if to_date:
        qs = qs.filter(due_date__lte=to_date)
    return qs.order_by("due_date", "installment_number", "id")
