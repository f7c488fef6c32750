import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.models import Enrollment, Installment, PlanChange
from core.utils_dates import due_date_for

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def schedule_base_date(enrollment: Enrollment):
    """
    Date de la cuota 1: jour de paiement choisi par l'étudiant, sinon date de matrícula.
    """
    student = enrollment.student
    return student.payment_date or enrollment.enrollment_date or timezone.localdate()


def _is_touched(inst: Installment) -> bool:
    # une cuota avec argent approuvé ou un voucher en attente ne se recalcule pas
    if (inst.paid_amount or ZERO) > ZERO:
        return True
    if inst.status in Installment.SETTLED_STATUSES:
        return True
    return inst.vouchers.exclude(status="rejected").exists()


@transaction.atomic
def generate_installments(enrollment: Enrollment) -> int:
    """
    Crée les N cuotas du plan (idempotent sur installment_number).
    """
    plan = enrollment.payment_plan
    base = schedule_base_date(enrollment)
    created_count = 0

    for number in range(1, int(plan.installments_count) + 1):
        amount = plan.monthly_amount or ZERO
        _, created = Installment.objects.get_or_create(
            enrollment=enrollment,
            installment_number=number,
            defaults={
                "due_date": due_date_for(base, number),
                "amount": amount,
                "late_fee": ZERO,
                "paid_amount": ZERO,
                "remaining_amount": amount,
                "status": Installment.STATUS_PENDING,
            },
        )
        if created:
            created_count += 1

    if created_count:
        logger.info("Cronograma generado: matrícula=%s cuotas=%s", enrollment.pk, created_count)
    return created_count


def misdated_installments(enrollment: Enrollment) -> list:
    """
    Cuotas intactes dont l'échéance ne correspond plus à la date de base.
    Retourne [(cuota, échéance attendue), ...].
    """
    base = schedule_base_date(enrollment)
    out = []
    for inst in enrollment.installments.exclude(status=Installment.STATUS_CANCELLED).order_by("installment_number"):
        expected = due_date_for(base, inst.installment_number)
        if inst.due_date != expected and not _is_touched(inst):
            out.append((inst, expected))
    return out


@transaction.atomic
def sync_installments_with_plan(enrollment_id: int, sync_dates: bool = True) -> dict:
    """
    Sync des cuotas d'une matrícula avec son plan.
    ✅ Met à jour uniquement les cuotas sans argent (paid_amount == 0, aucun voucher actif).
    ✅ Ne casse jamais une cuota déjà payée / partiellement payée.
    """
    enrollment = (
        Enrollment.objects
        .select_related("student", "payment_plan")
        .select_for_update()
        .get(pk=enrollment_id)
    )
    plan = enrollment.payment_plan
    base = schedule_base_date(enrollment)
    count = int(plan.installments_count)
    amount = plan.monthly_amount or ZERO

    stats = {"created": 0, "updated": 0, "deleted": 0, "kept": 0}

    for number in range(1, count + 1):
        expected_date = due_date_for(base, number)

        obj, created = Installment.objects.get_or_create(
            enrollment=enrollment,
            installment_number=number,
            defaults={
                "due_date": expected_date,
                "amount": amount,
                "remaining_amount": amount,
                "status": Installment.STATUS_PENDING,
            },
        )
        if created:
            stats["created"] += 1
            continue

        updated_fields = []
        paid = obj.paid_amount or ZERO

        if _is_touched(obj):
            # sécurité : amount ne doit jamais être < payé
            if (obj.amount or ZERO) < paid:
                obj.amount = paid
                updated_fields.append("amount")
            stats["kept"] += 1
        else:
            if (obj.amount or ZERO) != amount:
                obj.amount = amount
                updated_fields.append("amount")
            if sync_dates and obj.due_date != expected_date:
                obj.due_date = expected_date
                updated_fields.append("due_date")

        if updated_fields:
            obj.save(update_fields=updated_fields)
            obj.refresh_statut(save=True)
            stats["updated"] += 1

    # cuotas au-delà du plan: supprimées seulement si intactes
    extra = Installment.objects.filter(enrollment=enrollment, installment_number__gt=count)
    for inst in extra:
        if _is_touched(inst):
            stats["kept"] += 1
            continue
        inst.delete()
        stats["deleted"] += 1

    logger.info("Cronograma sincronizado: matrícula=%s %s", enrollment.pk, stats)
    return stats


@transaction.atomic
def change_plan(enrollment: Enrollment, new_plan, changed_by=None, reason: str = "") -> PlanChange:
    old_plan = enrollment.payment_plan

    change = PlanChange.objects.create(
        student=enrollment.student,
        enrollment=enrollment,
        old_plan=old_plan,
        new_plan=new_plan,
        changed_by=changed_by,
        reason=reason or "",
        old_installments_count=old_plan.installments_count if old_plan else 0,
        new_installments_count=new_plan.installments_count,
        old_total_amount=(old_plan.total_amount if old_plan else ZERO) or ZERO,
        new_total_amount=new_plan.total_amount or ZERO,
    )

    enrollment.payment_plan = new_plan
    enrollment.save(update_fields=["payment_plan"])

    sync_installments_with_plan(enrollment.pk)
    logger.info(
        "Cambio de plan: matrícula=%s %s -> %s por=%s",
        enrollment.pk, getattr(old_plan, "pk", None), new_plan.pk, getattr(changed_by, "pk", None),
    )
    return change
