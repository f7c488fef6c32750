"""
Rapprochement cuotas <-> vouchers.

Règle unique: paid_amount d'une cuota = somme des vouchers approuvés.
Toutes les écritures passent par ce module (upload, approbation, rejet,
paiement distribué, vérification manuelle en caja) puis par
Installment.refresh_statut() qui dérive le statut.
"""
import logging
from decimal import Decimal, InvalidOperation
from functools import partial

from django.db import transaction
from django.utils import timezone

from core.models import Enrollment, Installment, InstallmentVoucher
from core.services.exceptions import AlreadyReviewed, NotAllowed, PaymentError
from core.services.late_fees import apply_late_fee, recalculate_late_fees

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

REJECTION_REASON_MAX = 500


# =========================================================
# Helpers
# =========================================================
def _D(x, default=ZERO) -> Decimal:
    """
    Decimal safe: "150", "150,50", " 1 200.00 " ; refuse NaN/Inf.
    """
    if x is None:
        return default
    if isinstance(x, Decimal):
        value = x
    else:
        s = str(x).strip().replace(" ", "").replace("\u00a0", "").replace(",", ".")
        if s == "":
            return default
        try:
            value = Decimal(s)
        except (InvalidOperation, ValueError):
            return default
    if not value.is_finite():
        return default
    return value.quantize(CENT)


def _lock_voucher(voucher) -> InstallmentVoucher:
    return (
        InstallmentVoucher.objects
        .select_for_update()
        .select_related("installment__enrollment__payment_plan", "installment__enrollment__student")
        .get(pk=voucher.pk)
    )


def _lock_installment(installment) -> Installment:
    return (
        Installment.objects
        .select_for_update()
        .select_related("enrollment__payment_plan", "enrollment__student")
        .get(pk=installment.pk)
    )


def _reported_not_reviewed(enrollment, exclude_voucher_id=None) -> Decimal:
    qs = InstallmentVoucher.objects.filter(
        installment__enrollment=enrollment, status=InstallmentVoucher.STATUS_PENDING
    )
    if exclude_voucher_id:
        qs = qs.exclude(pk=exclude_voucher_id)
    return sum((v.declared_amount or ZERO for v in qs), ZERO)


def available_balance(enrollment, today=None, exclude_voucher_id=None) -> Decimal:
    """
    Saldo encore payable: total pendiente - vouchers déclarés en attente.
    """
    recalculate_late_fees(enrollment, today=today)
    balance = enrollment.total_pending - _reported_not_reviewed(enrollment, exclude_voucher_id)
    return balance if balance > ZERO else ZERO


def _queue_receipts(vouchers):
    from core.services.mailing import queue_receipt

    for v in vouchers:
        transaction.on_commit(partial(queue_receipt, v.pk))


def _append_note(current: str, extra: str) -> str:
    extra = (extra or "").strip()
    if not extra:
        return current or ""
    return f"{current}\n{extra}".strip() if current else extra


def refresh_installment(installment: Installment, reviewer=None, today=None) -> Installment:
    installment.refresh_statut(today=today, reviewer=reviewer, save=True)
    apply_late_fee(installment, today=today)
    return installment


# =========================================================
# Vouchers: subida / reemplazo
# =========================================================
@transaction.atomic
def upload_voucher(
    installment,
    uploaded_by,
    voucher_file,
    declared_amount,
    payment_date=None,
    payment_method="transfer",
    transaction_reference="",
    notes="",
    today=None,
) -> InstallmentVoucher:
    today = today or timezone.localdate()
    inst = _lock_installment(installment)

    if inst.status in (Installment.STATUS_VERIFIED, Installment.STATUS_CANCELLED):
        raise PaymentError("Esta cuota ya está verificada o anulada; no se pueden subir más vouchers.")

    amount = _D(declared_amount)
    if amount <= ZERO:
        raise PaymentError("El monto debe ser mayor a 0.", field="declared_amount")

    balance = available_balance(inst.enrollment, today=today)
    if amount > balance:
        raise PaymentError(
            f"El monto no puede exceder el saldo pendiente total (S/ {balance:.2f}).",
            field="declared_amount",
        )

    inst.refresh_from_db()
    voucher = InstallmentVoucher(
        installment=inst,
        uploaded_by=uploaded_by,
        declared_amount=amount,
        payment_date=payment_date or today,
        payment_method=payment_method or "transfer",
        transaction_reference=(transaction_reference or "").strip(),
        notes=(notes or "").strip(),
        status=InstallmentVoucher.STATUS_PENDING,
        payment_type="full" if amount >= inst.pending_amount else "partial",
        payment_source=InstallmentVoucher.SOURCE_VOUCHER,
    )
    if voucher_file:
        voucher.voucher_file = voucher_file
    voucher.full_clean(exclude=["voucher_file"] if not voucher_file else None)
    voucher.save()

    # cuota => "paid" (reportée, en attente de vérification), paid_amount inchangé
    inst.refresh_statut(today=today, save=True)

    logger.info(
        "Voucher subido: voucher=%s cuota=%s monto=%s por=%s",
        voucher.pk, inst.pk, amount, getattr(uploaded_by, "pk", None),
    )
    return voucher


@transaction.atomic
def replace_voucher(
    voucher,
    user,
    voucher_file=None,
    declared_amount=None,
    payment_date=None,
    payment_method=None,
    transaction_reference=None,
    notes=None,
    today=None,
) -> InstallmentVoucher:
    today = today or timezone.localdate()
    v = _lock_voucher(voucher)

    if v.status != InstallmentVoucher.STATUS_PENDING:
        raise AlreadyReviewed("Solo se pueden reemplazar vouchers pendientes de revisión.")

    if declared_amount is not None:
        amount = _D(declared_amount)
        if amount <= ZERO:
            raise PaymentError("El monto debe ser mayor a 0.", field="declared_amount")
        balance = available_balance(v.installment.enrollment, today=today, exclude_voucher_id=v.pk)
        if amount > balance:
            raise PaymentError(
                f"El monto no puede exceder el saldo pendiente total (S/ {balance:.2f}).",
                field="declared_amount",
            )
        v.declared_amount = amount
        v.payment_type = "full" if amount >= v.installment.pending_amount else "partial"

    if voucher_file:
        old_name = v.voucher_file.name if v.voucher_file else ""
        v.voucher_file = voucher_file
        if old_name:
            transaction.on_commit(partial(v.voucher_file.storage.delete, old_name))

    if payment_date is not None:
        v.payment_date = payment_date
    if payment_method:
        v.payment_method = payment_method
    if transaction_reference is not None:
        v.transaction_reference = transaction_reference.strip()
    if notes is not None:
        v.notes = notes.strip()

    v.uploaded_by = user or v.uploaded_by
    v.verified_amount = None
    v.reviewed_by = None
    v.reviewed_at = None
    v.rejection_reason = ""
    v.save()

    logger.info("Voucher reemplazado: voucher=%s por=%s", v.pk, getattr(user, "pk", None))
    return v


# =========================================================
# Paiement réparti (plus ancienne cuota d'abord)
# =========================================================
def _spread_amount(
    enrollment,
    amount: Decimal,
    user,
    payment_date,
    payment_method,
    reference,
    notes,
    source,
    today,
    exclude_ids=(),
):
    remaining = amount
    created, details = [], []
    now = timezone.now()

    qs = (
        Installment.objects
        .select_for_update()
        .select_related("enrollment__payment_plan")
        .filter(enrollment=enrollment)
        .exclude(status=Installment.STATUS_CANCELLED)
        .exclude(pk__in=list(exclude_ids))
        .order_by("installment_number", "id")
    )

    for inst in qs:
        if remaining <= ZERO:
            break

        apply_late_fee(inst, today=today)
        pending = inst.total_due - inst.approved_total()
        if pending <= ZERO:
            continue

        take = remaining if remaining < pending else pending
        had_payment = (inst.paid_amount or ZERO) > ZERO

        v = InstallmentVoucher.objects.create(
            installment=inst,
            uploaded_by=user,
            declared_amount=take,
            verified_amount=take,
            payment_date=payment_date,
            payment_method=payment_method,
            transaction_reference=reference,
            status=InstallmentVoucher.STATUS_APPROVED,
            payment_type="full" if take >= pending else "partial",
            applied_to_total=True,
            payment_source=source,
            reviewed_by=user,
            reviewed_at=now,
            notes=notes,
        )
        inst.refresh_statut(today=today, reviewer=user, save=True)

        remaining -= take
        created.append(v)
        details.append({
            "installment_id": inst.pk,
            "installment_number": inst.installment_number,
            "voucher_id": v.pk,
            "applied": take,
            "pending_before": pending,
            "pending_after": inst.pending_amount,
            "previously_paid": had_payment,
            "status": inst.status,
        })

    return created, details, remaining


@transaction.atomic
def distribute_payment(
    enrollment,
    amount,
    registered_by=None,
    payment_date=None,
    payment_method="card",
    reference="",
    notes="",
    today=None,
) -> dict:
    """
    Un seul paiement réparti sur les cuotas, de la plus ancienne à la plus récente.
    Un voucher approuvé par cuota touchée, une boleta par voucher.
    """
    today = today or timezone.localdate()
    enrollment = Enrollment.objects.select_for_update().get(pk=enrollment.pk)

    value = _D(amount)
    if value <= ZERO:
        raise PaymentError("El monto debe ser mayor a 0.", field="amount")

    recalculate_late_fees(enrollment, today=today)
    total_pending = enrollment.total_pending
    if value > total_pending:
        raise PaymentError(
            f"El monto excede el saldo pendiente total (S/ {total_pending:.2f}).",
            field="amount",
        )

    created, details, remaining = _spread_amount(
        enrollment,
        value,
        user=registered_by,
        payment_date=payment_date or today,
        payment_method=payment_method or "card",
        reference=(reference or "").strip(),
        notes=(notes or "Pago distribuido automáticamente").strip(),
        source=InstallmentVoucher.SOURCE_DISTRIBUTED,
        today=today,
    )

    _queue_receipts(created)

    logger.info(
        "Pago distribuido: matrícula=%s monto=%s vouchers=%s",
        enrollment.pk, value, [v.pk for v in created],
    )
    return {
        "enrollment_id": enrollment.pk,
        "amount": value,
        "applied": value - remaining,
        "remaining": remaining,
        "distribution": details,
        "vouchers": [v.pk for v in created],
    }


# =========================================================
# Révision (caja / verificador)
# =========================================================
@transaction.atomic
def approve_voucher(voucher, reviewer, notes="", verified_amount=None, today=None) -> InstallmentVoucher:
    today = today or timezone.localdate()
    v = _lock_voucher(voucher)

    if v.status != InstallmentVoucher.STATUS_PENDING:
        raise AlreadyReviewed("Este voucher ya fue revisado.")

    amount = _D(verified_amount) if verified_amount not in (None, "") else (v.declared_amount or ZERO)
    if amount <= ZERO:
        raise PaymentError("El monto verificado debe ser mayor a 0.", field="verified_amount")

    inst = _lock_installment(v.installment)
    pending_here = inst.total_due - inst.approved_total()
    if pending_here <= ZERO:
        raise PaymentError("Esta cuota ya está cubierta por pagos aprobados.")

    applied = amount if amount < pending_here else pending_here
    excess = amount - applied

    if excess > ZERO:
        others = sum(
            (i.pending_amount for i in inst.enrollment.installments
             .exclude(pk=inst.pk).exclude(status=Installment.STATUS_CANCELLED)),
            ZERO,
        )
        if excess > others:
            raise PaymentError(
                f"El monto excede el saldo pendiente de la matrícula (S/ {pending_here + others:.2f}).",
                field="verified_amount",
            )

    v.status = InstallmentVoucher.STATUS_APPROVED
    v.reviewed_by = reviewer
    v.reviewed_at = timezone.now()
    v.verified_amount = applied if (excess > ZERO or applied != v.declared_amount) else None
    v.payment_type = "full" if applied >= pending_here else "partial"
    v.applied_to_total = excess > ZERO
    v.notes = _append_note(v.notes, notes)
    v.save()

    inst.refresh_statut(today=today, reviewer=reviewer, save=True)

    approved = [v]
    if excess > ZERO:
        extra, _, _ = _spread_amount(
            inst.enrollment,
            excess,
            user=reviewer,
            payment_date=v.payment_date,
            payment_method=v.payment_method,
            reference=v.transaction_reference,
            notes=f"Excedente del voucher #{v.pk}",
            source=InstallmentVoucher.SOURCE_DISTRIBUTED,
            today=today,
            exclude_ids=[inst.pk],
        )
        approved.extend(extra)

    _queue_receipts(approved)

    logger.info(
        "Voucher aprobado: voucher=%s cuota=%s aplicado=%s excedente=%s estado=%s por=%s",
        v.pk, inst.pk, applied, excess, inst.status, getattr(reviewer, "pk", None),
    )
    return v


@transaction.atomic
def reject_voucher(voucher, reviewer, reason, today=None) -> InstallmentVoucher:
    today = today or timezone.localdate()
    v = _lock_voucher(voucher)

    if v.status != InstallmentVoucher.STATUS_PENDING:
        raise AlreadyReviewed("Este voucher ya fue revisado.")

    reason = (reason or "").strip()
    if not reason:
        raise PaymentError("Debe indicar el motivo del rechazo.", field="rejection_reason")
    if len(reason) > REJECTION_REASON_MAX:
        raise PaymentError(
            f"El motivo no puede superar {REJECTION_REASON_MAX} caracteres.", field="rejection_reason"
        )

    v.status = InstallmentVoucher.STATUS_REJECTED
    v.reviewed_by = reviewer
    v.reviewed_at = timezone.now()
    v.rejection_reason = reason
    v.save()

    # retour pending / overdue si plus rien d'approuvé ni en attente, mora recalculée
    inst = _lock_installment(v.installment)
    refresh_installment(inst, today=today)

    logger.info(
        "Voucher rechazado: voucher=%s cuota=%s estado=%s por=%s",
        v.pk, inst.pk, inst.status, getattr(reviewer, "pk", None),
    )
    return v


def ensure_student_enrolled(student):
    if not student.is_enrolled:
        raise NotAllowed("El estudiante no está matriculado o su matrícula no ha sido verificada.")


def verify_voucher(voucher, reviewer, action, reason="", notes="", verified_amount=None, today=None):
    """
    Point d'entrée caja: action = "approve" | "reject".
    """
    ensure_student_enrolled(voucher.installment.enrollment.student)

    if action == "approve":
        return approve_voucher(voucher, reviewer, notes=notes, verified_amount=verified_amount, today=today)
    if action == "reject":
        return reject_voucher(voucher, reviewer, reason=reason, today=today)
    raise PaymentError("Acción inválida.", field="action")


# =========================================================
# Vérification manuelle d'une cuota (caja)
# =========================================================
@transaction.atomic
def mark_installment_verified(installment, user, verified: bool = True, today=None) -> Installment:
    """
    verified=True : complète par un voucher "caja" le montant manquant => verified.
    verified=False: les vouchers approuvés repassent en revue (pending) => "paid",
                    les compléments "caja" sont rejetés.
    """
    today = today or timezone.localdate()
    inst = _lock_installment(installment)

    if inst.status == Installment.STATUS_CANCELLED:
        raise PaymentError("La cuota está anulada.")

    if verified:
        apply_late_fee(inst, today=today)
        missing = inst.total_due - inst.approved_total()
        if missing > ZERO:
            v = InstallmentVoucher.objects.create(
                installment=inst,
                uploaded_by=user,
                declared_amount=missing,
                payment_date=today,
                payment_method="cash",
                status=InstallmentVoucher.STATUS_APPROVED,
                payment_type="full" if (inst.paid_amount or ZERO) <= ZERO else "partial",
                payment_source=InstallmentVoucher.SOURCE_CASHIER,
                reviewed_by=user,
                reviewed_at=timezone.now(),
                notes="Verificación manual en caja",
            )
            _queue_receipts([v])
        inst.refresh_statut(today=today, reviewer=user, save=True)
        logger.info("Cuota verificada manualmente: cuota=%s por=%s", inst.pk, getattr(user, "pk", None))
        return inst

    now = timezone.now()
    for v in inst.approved_vouchers().select_for_update():
        if v.payment_source == InstallmentVoucher.SOURCE_CASHIER:
            v.status = InstallmentVoucher.STATUS_REJECTED
            v.rejection_reason = "Verificación manual revertida"
            v.reviewed_by = user
            v.reviewed_at = now
        else:
            v.status = InstallmentVoucher.STATUS_PENDING
            v.reviewed_by = None
            v.reviewed_at = None
        v.save(update_fields=["status", "rejection_reason", "reviewed_by", "reviewed_at"])

    inst.verified_at = None
    inst.verified_by = None
    refresh_installment(inst, today=today)
    logger.info("Verificación revertida: cuota=%s por=%s", inst.pk, getattr(user, "pk", None))
    return inst


# =========================================================
# Réparation des écarts (paid_amount / statut)
# =========================================================
def reconcile_installments(queryset=None, dry_run=False, today=None) -> list:
    """
    Compare paid_amount/statut stockés avec la somme des vouchers approuvés.
    Retourne la liste des écarts (corrigés sauf dry_run).
    """
    today = today or timezone.localdate()
    if queryset is None:
        queryset = Installment.objects.all()

    drifts = []
    with transaction.atomic():
        qs = (
            queryset
            .select_related("enrollment__payment_plan")
            .exclude(status=Installment.STATUS_CANCELLED)
            .order_by("enrollment_id", "installment_number")
        )
        for inst in qs:
            before = {
                "paid_amount": inst.paid_amount or ZERO,
                "late_fee": inst.late_fee or ZERO,
                "remaining_amount": inst.remaining_amount or ZERO,
                "status": inst.status,
            }

            inst.refresh_statut(today=today, save=False)
            apply_late_fee(inst, today=today, save=False)

            after = {
                "paid_amount": inst.paid_amount,
                "late_fee": inst.late_fee,
                "remaining_amount": inst.remaining_amount,
                "status": inst.status,
            }
            if before == after:
                continue

            drifts.append({
                "installment_id": inst.pk,
                "enrollment_id": inst.enrollment_id,
                "installment_number": inst.installment_number,
                "before": before,
                "after": after,
            })
            if not dry_run:
                inst.save(update_fields=[
                    "paid_amount", "remaining_amount", "paid_date", "payment_type",
                    "status", "late_fee", "verified_at", "verified_by",
                ])

        if dry_run:
            transaction.set_rollback(True)

    if drifts:
        logger.info("Reconciliación: %s cuotas %s", len(drifts), "detectadas" if dry_run else "corregidas")
    return drifts
