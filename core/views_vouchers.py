# core/views_vouchers.py
import mimetypes
import os

from django.http import FileResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from accounts.permissions import group_required
from accounts.utils import has_group
from core.forms import RejectVoucherForm, VoucherReplaceForm, VoucherUploadForm
from core.models import Installment, InstallmentVoucher
from core.services.enrollment import installment_payload, voucher_payload
from core.services.exceptions import NotAllowed
from core.services.reconciliation import approve_voucher, reject_voucher, replace_voucher, upload_voucher
from core.utils_roles import (
    ROLE_ADMIN,
    ROLE_CASHIER,
    ROLE_SALES_ADVISOR,
    ROLE_STUDENT,
    ROLE_VERIFIER,
    STAFF_REVIEW_ROLES,
)
from core.views_common import api_view, form_errors, json_error, own_student, request_data


def _voucher_qs():
    return InstallmentVoucher.objects.select_related(
        "installment__enrollment__student",
        "installment__enrollment__payment_plan",
    )


def _check_owner(request, student):
    owner = own_student(request)
    if owner.pk != student.pk:
        raise NotAllowed("No tienes permiso para acceder a este voucher.")


def _upload_response(voucher, inst):
    inst.refresh_from_db()
    return JsonResponse({
        "message": "Voucher subido correctamente. Será verificado por caja.",
        "voucher": voucher_payload(voucher),
        "installment": installment_payload(inst),
    }, status=201)


def _do_upload(request, inst):
    form = VoucherUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_errors(form)

    cd = form.cleaned_data
    voucher = upload_voucher(
        inst,
        uploaded_by=request.user,
        voucher_file=cd["voucher_file"],
        declared_amount=cd["declared_amount"],
        payment_date=cd["payment_date"],
        payment_method=cd["payment_method"],
        transaction_reference=cd.get("transaction_reference") or "",
        notes=cd.get("notes") or "",
    )
    return _upload_response(voucher, inst)


# =========================================================
# 1) Upload (asesor / admin / caja)
# =========================================================
@require_POST
@group_required(ROLE_ADMIN, ROLE_CASHIER, ROLE_SALES_ADVISOR)
@api_view
def voucher_upload(request, installment_id: int):
    inst = get_object_or_404(Installment.objects.select_related("enrollment__student"), pk=installment_id)
    return _do_upload(request, inst)


# =========================================================
# 2) Upload / remplacement (étudiant, ses cuotas seulement)
# =========================================================
@require_POST
@group_required(ROLE_STUDENT)
@api_view
def student_voucher_upload(request, installment_id: int):
    inst = get_object_or_404(Installment.objects.select_related("enrollment__student"), pk=installment_id)
    _check_owner(request, inst.enrollment.student)
    return _do_upload(request, inst)


@require_POST
@group_required(ROLE_STUDENT)
@api_view
def student_voucher_replace(request, voucher_id: int):
    voucher = get_object_or_404(_voucher_qs(), pk=voucher_id)
    _check_owner(request, voucher.student)

    form = VoucherReplaceForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_errors(form)

    cd = form.cleaned_data
    voucher = replace_voucher(
        voucher,
        request.user,
        voucher_file=cd.get("voucher_file"),
        declared_amount=cd.get("declared_amount"),
        payment_date=cd.get("payment_date"),
        payment_method=cd.get("payment_method") or None,
        transaction_reference=cd.get("transaction_reference") if "transaction_reference" in request.POST else None,
        notes=cd.get("notes") if "notes" in request.POST else None,
    )
    return JsonResponse({"message": "Voucher reemplazado.", "voucher": voucher_payload(voucher)})


# =========================================================
# 3) Fichier du voucher (staff ou propriétaire)
# =========================================================
@require_GET
@group_required(ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER, ROLE_SALES_ADVISOR, ROLE_STUDENT)
@api_view
def voucher_file(request, voucher_id: int):
    voucher = get_object_or_404(_voucher_qs(), pk=voucher_id)
    if not has_group(request.user, ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER, ROLE_SALES_ADVISOR):
        _check_owner(request, voucher.student)

    if not voucher.voucher_file or not voucher.voucher_file.storage.exists(voucher.voucher_file.name):
        return json_error("El voucher no tiene archivo adjunto.", status=404)

    name = os.path.basename(voucher.voucher_file.name)
    content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return FileResponse(voucher.voucher_file.open("rb"), content_type=content_type, filename=name)


# =========================================================
# 4) Révision
# =========================================================
@require_POST
@group_required(*STAFF_REVIEW_ROLES)
@api_view
def voucher_approve(request, voucher_id: int):
    voucher = get_object_or_404(_voucher_qs(), pk=voucher_id)
    data = request_data(request)

    voucher = approve_voucher(
        voucher,
        request.user,
        notes=data.get("notes") or "",
        verified_amount=data.get("verified_amount"),
    )
    inst = Installment.objects.select_related("enrollment__payment_plan").get(pk=voucher.installment_id)
    return JsonResponse({
        "message": "Voucher aprobado.",
        "voucher": voucher_payload(voucher),
        "installment": installment_payload(inst),
    })


@require_POST
@group_required(*STAFF_REVIEW_ROLES)
@api_view
def voucher_reject(request, voucher_id: int):
    voucher = get_object_or_404(_voucher_qs(), pk=voucher_id)
    form = RejectVoucherForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)

    voucher = reject_voucher(voucher, request.user, reason=form.cleaned_data["rejection_reason"])
    inst = Installment.objects.select_related("enrollment__payment_plan").get(pk=voucher.installment_id)
    return JsonResponse({
        "message": "Voucher rechazado.",
        "voucher": voucher_payload(voucher),
        "installment": installment_payload(inst),
    })


@require_GET
@group_required(*STAFF_REVIEW_ROLES)
def voucher_pending_list(request):
    qs = (
        _voucher_qs()
        .filter(status=InstallmentVoucher.STATUS_PENDING)
        .order_by("created_at", "id")
    )
    results = []
    for v in qs:
        row = voucher_payload(v)
        enrollment = v.installment.enrollment
        row["installment_number"] = v.installment.installment_number
        row["enrollment_code"] = enrollment.enrollment_code
        row["student"] = {"id": enrollment.student_id, "full_name": enrollment.student.full_name}
        results.append(row)
    return JsonResponse({"results": results, "count": len(results)})
