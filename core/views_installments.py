# core/views_installments.py
import logging
from decimal import Decimal

from django.db import transaction
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from accounts.permissions import group_required
from core.forms import DateRangeForm, InstallmentUpdateForm, ManualVerifyForm
from core.models import Enrollment, Installment
from core.services.enrollment import enrollment_summary, installment_payload
from core.services.late_fees import apply_late_fee, overdue_installments, recalculate_late_fees
from core.services.reconciliation import ensure_student_enrolled, mark_installment_verified, refresh_installment
from core.services.reports import overdue_workbook
from core.utils_roles import ROLE_ADMIN, ROLE_CASHIER, ROLE_SALES_ADVISOR, ROLE_VERIFIER
from core.views_common import api_view, form_errors, money_str, request_data, xlsx_response

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

STAFF = (ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER, ROLE_SALES_ADVISOR)


def _installment_qs():
    return Installment.objects.select_related("enrollment__payment_plan", "enrollment__student")


# =========================================================
# 1) Cuotas d'une matrícula / détail
# =========================================================
@require_GET
@group_required(*STAFF)
@api_view
def enrollment_installments(request, enrollment_id: int):
    enrollment = get_object_or_404(
        Enrollment.objects.select_related("student", "payment_plan__academic_level"), pk=enrollment_id
    )
    return JsonResponse(enrollment_summary(enrollment))


@require_GET
@group_required(*STAFF)
@api_view
def installment_detail(request, installment_id: int):
    inst = get_object_or_404(_installment_qs(), pk=installment_id)
    apply_late_fee(inst)
    return JsonResponse({"installment": installment_payload(inst, with_vouchers=True)})


# =========================================================
# 2) Correction caja (montant / échéance / notes)
# =========================================================
@require_POST
@group_required(ROLE_ADMIN, ROLE_CASHIER)
@api_view
def installment_update(request, installment_id: int):
    inst = get_object_or_404(_installment_qs(), pk=installment_id)
    if inst.status == Installment.STATUS_CANCELLED:
        return JsonResponse({"message": "La cuota está anulada."}, status=422)

    form = InstallmentUpdateForm(request_data(request), instance=inst)
    if not form.is_valid():
        return form_errors(form)

    with transaction.atomic():
        inst = form.save()
        # statut / restant dérivés à nouveau (mora incluse)
        refresh_installment(inst, reviewer=request.user)

    logger.info("Cuota actualizada: %s por=%s", inst.pk, request.user.pk)
    return JsonResponse({"message": "Cuota actualizada.", "installment": installment_payload(inst)})


@require_POST
@group_required(ROLE_ADMIN, ROLE_CASHIER)
@api_view
def enrollment_recalculate(request, enrollment_id: int):
    enrollment = get_object_or_404(Enrollment, pk=enrollment_id)
    updated = recalculate_late_fees(enrollment)
    return JsonResponse({
        "message": "Moras recalculadas.",
        "updated": updated,
        "enrollment": enrollment_summary(enrollment, refresh=False),
    })


# =========================================================
# 3) Cuotas en retard (liste + export)
# =========================================================
def _overdue_from_request(request):
    form = DateRangeForm(request.GET)
    if not form.is_valid():
        return form, None
    return form, overdue_installments(
        from_date=form.cleaned_data.get("from_date"),
        to_date=form.cleaned_data.get("to_date"),
    )


@require_GET
@group_required(ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER)
@api_view
def overdue_list(request):
    form, qs = _overdue_from_request(request)
    if qs is None:
        return form_errors(form)

    today = timezone.localdate()
    items, total_amount, total_late, total_pending = [], ZERO, ZERO, ZERO
    for inst in qs:
        row = installment_payload(inst, today=today)
        row["enrollment_code"] = inst.enrollment.enrollment_code
        row["student"] = {
            "id": inst.enrollment.student_id,
            "full_name": inst.enrollment.student.full_name,
            "phone": inst.enrollment.student.phone,
            "email": inst.enrollment.student.email,
        }
        items.append(row)
        total_amount += inst.amount or ZERO
        total_late += inst.late_fee or ZERO
        total_pending += inst.pending_amount

    return JsonResponse({
        "results": items,
        "count": len(items),
        "totalAmount": money_str(total_amount),
        "totalLateFees": money_str(total_late),
        "totalPending": money_str(total_pending),
    })


@require_GET
@group_required(ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER)
@api_view
def overdue_export(request):
    form, qs = _overdue_from_request(request)
    if qs is None:
        return form_errors(form)
    return xlsx_response(overdue_workbook(qs), "cuotas_vencidas.xlsx")


# =========================================================
# 4) Vérification manuelle (caja)
# =========================================================
@require_POST
@group_required(ROLE_ADMIN, ROLE_CASHIER)
@api_view
def installment_verify(request, installment_id: int):
    inst = get_object_or_404(_installment_qs(), pk=installment_id)
    ensure_student_enrolled(inst.enrollment.student)

    data = request_data(request)
    form = ManualVerifyForm(data)
    if not form.is_valid():
        return form_errors(form)

    # absent => vérifier
    verified = form.cleaned_data["verified"] if "verified" in data else True
    inst = mark_installment_verified(inst, request.user, verified=verified)

    message = "Cuota verificada." if verified else "Verificación revertida."
    return JsonResponse({"message": message, "installment": installment_payload(inst, with_vouchers=True)})
