# core/views_plans.py
import logging

from django.shortcuts import get_object_or_404
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from accounts.permissions import group_required
from core.forms import PaymentPlanForm, PlanChangeForm
from core.models import Enrollment, PaymentPlan
from core.services.schedule import change_plan
from core.utils_roles import ROLE_ADMIN, ROLE_CASHIER, ROLE_SALES_ADVISOR
from core.views_common import api_view, form_errors, json_error, money_str, request_data

logger = logging.getLogger(__name__)


def plan_payload(plan: PaymentPlan) -> dict:
    return {
        "id": plan.pk,
        "name": plan.name,
        "academic_level_id": plan.academic_level_id,
        "academic_level": plan.level_label,
        "installments_count": plan.installments_count,
        "monthly_amount": money_str(plan.monthly_amount),
        "total_amount": money_str(plan.total_amount),
        "discount_percentage": money_str(plan.discount_percentage),
        "duration_months": plan.duration_months,
        "late_fee_percentage": money_str(plan.late_fee_percentage),
        "grace_period_days": plan.grace_period_days,
        "is_active": plan.is_active,
        "description": plan.description,
    }


# =========================================================
# 1) Liste (filtres niveau / actif)
# =========================================================
@require_GET
@group_required(ROLE_ADMIN, ROLE_CASHIER, ROLE_SALES_ADVISOR)
def plan_list(request):
    qs = PaymentPlan.objects.select_related("academic_level")

    level_id = (request.GET.get("academic_level") or "").strip()
    if level_id.isdigit():
        qs = qs.filter(academic_level_id=int(level_id))

    active = (request.GET.get("is_active") or "").strip().lower()
    if active in ("1", "true"):
        qs = qs.filter(is_active=True)
    elif active in ("0", "false"):
        qs = qs.filter(is_active=False)

    return JsonResponse({"results": [plan_payload(p) for p in qs]})


# =========================================================
# 2) CRUD (admin)
# =========================================================
@require_POST
@group_required(ROLE_ADMIN)
@api_view
def plan_create(request):
    form = PaymentPlanForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)

    plan = form.save()
    logger.info("Plan de pago creado: %s por=%s", plan.pk, request.user.pk)
    return JsonResponse({"message": "Plan de pago creado.", "plan": plan_payload(plan)}, status=201)


@require_POST
@group_required(ROLE_ADMIN)
@api_view
def plan_update(request, plan_id: int):
    plan = get_object_or_404(PaymentPlan, pk=plan_id)
    form = PaymentPlanForm(request_data(request), instance=plan)
    if not form.is_valid():
        return form_errors(form)

    plan = form.save()
    logger.info("Plan de pago actualizado: %s por=%s", plan.pk, request.user.pk)
    return JsonResponse({"message": "Plan de pago actualizado.", "plan": plan_payload(plan)})


@require_POST
@group_required(ROLE_ADMIN)
@api_view
def plan_delete(request, plan_id: int):
    plan = get_object_or_404(PaymentPlan, pk=plan_id)
    if plan.has_enrollments:
        return json_error("No se puede eliminar un plan con matrículas asociadas.", status=422)

    plan.delete()
    logger.info("Plan de pago eliminado: %s por=%s", plan_id, request.user.pk)
    return JsonResponse({"message": "Plan de pago eliminado."})


# =========================================================
# 3) Changement de plan d'une matrícula
# =========================================================
@require_POST
@group_required(ROLE_ADMIN, ROLE_CASHIER)
@api_view
def enrollment_change_plan(request, enrollment_id: int):
    enrollment = get_object_or_404(Enrollment.objects.select_related("student", "payment_plan"), pk=enrollment_id)
    form = PlanChangeForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)

    new_plan = form.cleaned_data["payment_plan"]
    if new_plan.pk == enrollment.payment_plan_id:
        return json_error("La matrícula ya tiene este plan de pago.", status=422)

    change = change_plan(enrollment, new_plan, changed_by=request.user, reason=form.cleaned_data["reason"])
    return JsonResponse({
        "message": "Plan de pago actualizado.",
        "plan_change_id": change.pk,
        "plan": plan_payload(new_plan),
    })
