# core/views_cashier.py
"""
Caja: détail matrícula d'un étudiant, vérification de vouchers,
paiement réparti, boletas et export des paiements.
"""
import os

from django.core.files.storage import default_storage
from django.http import FileResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from accounts.permissions import group_required
from core.forms import DateRangeForm, DistributedPaymentForm, VoucherReviewForm
from core.models import Enrollment, Installment, InstallmentVoucher, Student
from core.pdf.receipt import generate_payment_receipt
from core.services.enrollment import enrollment_summary, installment_payload, voucher_payload
from core.services.reconciliation import distribute_payment, ensure_student_enrolled, verify_voucher
from core.services.reports import payments_workbook
from core.utils_roles import ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER
from core.views_common import api_view, form_errors, json_error, money_str, request_data, xlsx_response

CASHIER_ROLES = (ROLE_ADMIN, ROLE_CASHIER)


# =========================================================
# 1) Détail matrícula (étudiant matriculado seulement)
# =========================================================
@require_GET
@group_required(*CASHIER_ROLES, ROLE_VERIFIER)
@api_view
def student_enrollment_detail(request, student_id: int):
    student = get_object_or_404(Student, pk=student_id)
    ensure_student_enrolled(student)

    enrollment = student.current_enrollment()
    if enrollment is None:
        return json_error("El estudiante no tiene una matrícula registrada.", status=404)
    return JsonResponse(enrollment_summary(enrollment))


# =========================================================
# 2) Vérification d'un voucher (approve / reject)
# =========================================================
@require_POST
@group_required(*CASHIER_ROLES, ROLE_VERIFIER)
@api_view
def cashier_verify_voucher(request, voucher_id: int):
    voucher = get_object_or_404(
        InstallmentVoucher.objects.select_related("installment__enrollment__student"), pk=voucher_id
    )
    form = VoucherReviewForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)

    cd = form.cleaned_data
    voucher = verify_voucher(
        voucher,
        request.user,
        action=cd["action"],
        reason=cd.get("rejection_reason") or "",
        notes=cd.get("notes") or "",
        verified_amount=cd.get("verified_amount"),
    )
    inst = Installment.objects.select_related("enrollment__payment_plan").get(pk=voucher.installment_id)

    message = "Voucher aprobado." if cd["action"] == "approve" else "Voucher rechazado."
    return JsonResponse({
        "message": message,
        "voucher": voucher_payload(voucher),
        "installment": installment_payload(inst),
    })


# =========================================================
# 3) Paiement réparti (plus ancienne cuota d'abord)
# =========================================================
@require_POST
@group_required(*CASHIER_ROLES)
@api_view
def cashier_distributed_payment(request, enrollment_id: int):
    enrollment = get_object_or_404(Enrollment.objects.select_related("student"), pk=enrollment_id)
    ensure_student_enrolled(enrollment.student)

    form = DistributedPaymentForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)

    cd = form.cleaned_data
    result = distribute_payment(
        enrollment,
        cd["amount"],
        registered_by=request.user,
        payment_date=cd.get("payment_date"),
        payment_method=cd.get("payment_method") or "cash",
        reference=cd.get("reference") or "",
        notes=cd.get("notes") or "",
    )

    distribution = [
        {
            **row,
            "applied": money_str(row["applied"]),
            "pending_before": money_str(row["pending_before"]),
            "pending_after": money_str(row["pending_after"]),
        }
        for row in result["distribution"]
    ]
    return JsonResponse({
        "message": "Pago registrado y distribuido correctamente.",
        "amount": money_str(result["amount"]),
        "applied": money_str(result["applied"]),
        "remaining": money_str(result["remaining"]),
        "distribution": distribution,
        "vouchers": result["vouchers"],
        "enrollment": enrollment_summary(enrollment, refresh=False),
    }, status=201)


# =========================================================
# 4) Boleta PDF (régénérée si absente)
# =========================================================
@require_GET
@group_required(*CASHIER_ROLES, ROLE_VERIFIER)
@api_view
def cashier_receipt_download(request, voucher_id: int):
    voucher = get_object_or_404(
        InstallmentVoucher.objects.select_related(
            "installment__enrollment__student",
            "installment__enrollment__payment_plan__academic_level",
            "reviewed_by",
        ),
        pk=voucher_id,
    )
    if voucher.status != InstallmentVoucher.STATUS_APPROVED:
        return json_error("Solo los vouchers aprobados tienen boleta.", status=422)

    path = voucher.receipt_path
    if not path or not default_storage.exists(path):
        path = generate_payment_receipt(voucher)
        if not path:
            return json_error("No se pudo generar la boleta de pago.", status=500)

    return FileResponse(
        default_storage.open(path, "rb"),
        content_type="application/pdf",
        as_attachment=True,
        filename=os.path.basename(path),
    )


# =========================================================
# 5) Export des paiements (xlsx)
# =========================================================
@require_GET
@group_required(*CASHIER_ROLES)
@api_view
def cashier_payments_export(request):
    form = DateRangeForm(request.GET)
    if not form.is_valid():
        return form_errors(form)

    status = (request.GET.get("status") or InstallmentVoucher.STATUS_APPROVED).strip()
    if status not in dict(InstallmentVoucher.STATUS_CHOICES) and status != "all":
        return json_error("Estado inválido.", status=422)

    wb = payments_workbook(
        from_date=form.cleaned_data.get("from_date"),
        to_date=form.cleaned_data.get("to_date"),
        status=None if status == "all" else status,
    )
    return xlsx_response(wb, "pagos.xlsx")
