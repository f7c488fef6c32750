import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.models import Enrollment, Installment, InstallmentVoucher, Student
from core.services.exceptions import PaymentError
from core.services.late_fees import recalculate_late_fees
from core.utils.words import installment_concept, payment_method_label, status_label
from core.utils_dates import signed_days

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@transaction.atomic
def create_enrollment(student, plan, enrollment_date=None, enrollment_fee=None, notes="") -> Enrollment:
    if not plan.is_active:
        raise PaymentError("El plan de pago seleccionado no está activo.", field="payment_plan")

    enrollment = Enrollment.objects.create(
        student=student,
        payment_plan=plan,
        enrollment_date=enrollment_date or timezone.localdate(),
        enrollment_fee=enrollment_fee if enrollment_fee is not None else ZERO,
        notes=notes or "",
    )
    # cuotas créées par le signal post_save (core.signals)

    logger.info(
        "Matrícula creada: %s estudiante=%s plan=%s", enrollment.enrollment_code, student.pk, plan.pk
    )
    return enrollment


@transaction.atomic
def verify_enrollment(enrollment, user) -> Enrollment:
    """
    Validation de la matrícula (frais vérifiés) => étudiant matriculado.
    """
    now = timezone.now()

    enrollment.enrollment_fee_verified = True
    enrollment.verified_by = user
    enrollment.verified_at = now
    enrollment.status = Enrollment.STATUS_ACTIVE
    enrollment.save(update_fields=["enrollment_fee_verified", "verified_by", "verified_at", "status"])

    student = enrollment.student
    student.prospect_status = Student.STATUS_ENROLLED
    student.enrollment_verified = True
    student.enrollment_verified_by = user
    student.enrollment_verified_at = now
    student.save(update_fields=[
        "prospect_status", "enrollment_verified", "enrollment_verified_by", "enrollment_verified_at",
    ])

    logger.info("Matrícula verificada: %s por=%s", enrollment.enrollment_code, getattr(user, "pk", None))
    return enrollment


def _money_str(x) -> str:
    return f"{(x or ZERO):.2f}"


def voucher_payload(v: InstallmentVoucher) -> dict:
    return {
        "id": v.pk,
        "installment_id": v.installment_id,
        "declared_amount": _money_str(v.declared_amount),
        "verified_amount": _money_str(v.verified_amount) if v.verified_amount is not None else None,
        "payment_date": v.payment_date.isoformat() if v.payment_date else None,
        "payment_method": v.payment_method,
        "payment_method_label": payment_method_label(v.payment_method),
        "transaction_reference": v.transaction_reference,
        "status": v.status,
        "payment_type": v.payment_type,
        "payment_source": v.payment_source,
        "applied_to_total": v.applied_to_total,
        "rejection_reason": v.rejection_reason or None,
        "reviewed_at": v.reviewed_at.isoformat() if v.reviewed_at else None,
        "has_file": bool(v.voucher_file),
        "receipt_number": v.receipt_number or None,
        "has_receipt": bool(v.receipt_path),
    }


def installment_payload(inst: Installment, today=None, with_vouchers=False) -> dict:
    today = today or timezone.localdate()
    data = {
        "id": inst.pk,
        "installment_number": inst.installment_number,
        "concept": installment_concept(inst.installment_number),
        "due_date": inst.due_date.isoformat(),
        "grace_deadline": inst.grace_deadline.isoformat(),
        "amount": _money_str(inst.amount),
        "late_fee": _money_str(inst.late_fee),
        "total_due": _money_str(inst.total_due),
        "paid_amount": _money_str(inst.paid_amount),
        "remaining_amount": _money_str(inst.pending_amount),
        "paid_date": inst.paid_date.isoformat() if inst.paid_date else None,
        "status": inst.status,
        "status_label": status_label(inst.status),
        "payment_type": inst.payment_type,
        "is_overdue": inst.is_overdue(today),
        "days_late": inst.days_late(today),
        "daysUntilDue": signed_days(today, inst.due_date),
        "daysUntilGraceLimit": signed_days(today, inst.grace_deadline),
        "verified_at": inst.verified_at.isoformat() if inst.verified_at else None,
    }
    if with_vouchers:
        data["vouchers"] = [voucher_payload(v) for v in inst.vouchers.all().order_by("created_at", "id")]
    return data


def enrollment_summary(enrollment, today=None, refresh=True) -> dict:
    """
    Vue caja d'une matrícula: totaux + cuotas (mora recalculée).
    """
    today = today or timezone.localdate()
    if refresh:
        recalculate_late_fees(enrollment, today=today)

    plan = enrollment.payment_plan
    student = enrollment.student
    installments = (
        enrollment.installments
        .select_related("enrollment__payment_plan")
        .prefetch_related("vouchers")
        .order_by("installment_number")
    )

    return {
        "id": enrollment.pk,
        "enrollment_code": enrollment.enrollment_code,
        "enrollment_date": enrollment.enrollment_date.isoformat() if enrollment.enrollment_date else None,
        "status": enrollment.status,
        "enrollment_fee": _money_str(enrollment.enrollment_fee),
        "enrollment_fee_verified": enrollment.enrollment_fee_verified,
        "student": {
            "id": student.pk,
            "full_name": student.full_name,
            "document_number": student.document_number,
            "email": student.email,
            "phone": student.phone,
            "prospect_status": student.prospect_status,
            "enrollment_verified": student.enrollment_verified,
        },
        "payment_plan": {
            "id": plan.pk,
            "name": plan.name,
            "installments_count": plan.installments_count,
            "monthly_amount": _money_str(plan.monthly_amount),
            "total_amount": _money_str(plan.total_amount),
            "late_fee_percentage": _money_str(plan.late_fee_percentage),
            "grace_period_days": plan.grace_period_days,
            "academic_level": plan.level_label,
        },
        "totals": {
            "total_amount": _money_str(enrollment.total_amount),
            "total_late_fees": _money_str(enrollment.total_late_fees),
            "total_paid": _money_str(enrollment.total_paid),
            "total_pending": _money_str(enrollment.total_pending),
            "payment_progress": enrollment.payment_progress,
        },
        "installments": [installment_payload(i, today=today, with_vouchers=True) for i in installments],
    }
