# core/services/documents.py
# Variables {{...}} des plantillas de boleta et de cronograma.
import re
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from core.models import Installment, InstallmentVoucher, Setting
from core.utils.receipts import enrollment_code, receipt_number, schedule_code
from core.utils.words import (
    amount_to_words,
    installment_concept,
    money,
    payment_method_label,
    status_color,
    status_label,
)

RECEIPT_TEMPLATE_KEY = "payment_receipt_template"
SCHEDULE_TEMPLATE_KEY = "payment_schedule_template"

_VAR_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")

ZERO = Decimal("0.00")


def render_template(content: str, variables: dict) -> str:
    """
    Remplace chaque {{cle}} connue; les clés inconnues restent telles quelles.
    """
    if not content:
        return ""

    def _sub(m):
        key = m.group(1)
        if key in variables:
            value = variables[key]
            return "" if value is None else str(value)
        return m.group(0)

    return _VAR_RE.sub(_sub, content)


def _fmt_date(d, fmt="%d/%m/%Y") -> str:
    return d.strftime(fmt) if d else "-"


def _user_label(user, default="Sistema") -> str:
    if not user:
        return default
    full = (user.get_full_name() or "").strip()
    return full or user.get_username() or default


def receipt_variables(voucher: InstallmentVoucher, now=None) -> dict:
    now = timezone.localtime(now) if now else timezone.localtime()
    inst = voucher.installment
    enrollment = inst.enrollment
    student = enrollment.student
    plan = enrollment.payment_plan
    paid = voucher.effective_amount

    number = voucher.receipt_number or receipt_number(voucher, now)

    return {
        "numero_boleta": number,
        "fecha_emision": now.strftime("%d/%m/%Y"),
        "hora_emision": now.strftime("%H:%M:%S"),
        "nombre_estudiante": student.full_name,
        "email_estudiante": student.email or "-",
        "telefono_estudiante": student.phone or "-",
        "dni_estudiante": student.document_number or "-",
        "codigo_matricula": enrollment_code(enrollment),
        "concepto": installment_concept(inst.installment_number),
        "numero_cuota": inst.installment_number,
        "monto_cuota": money(inst.amount),
        "mora": money(inst.late_fee),
        "monto_pagado": money(paid),
        "monto_total": money(inst.total_due),
        "monto_palabras": amount_to_words(paid),
        "metodo_pago": payment_method_label(voucher.payment_method),
        "fecha_pago": _fmt_date(voucher.payment_date),
        "referencia": voucher.transaction_reference or "-",
        "cajero": _user_label(voucher.reviewed_by),
        "plan_pago": plan.name if plan else "-",
        "nivel_academico": plan.level_label if plan else "N/A",
        "nombre_escuela": getattr(settings, "UNCED_SCHOOL_NAME", "UNCED"),
    }


def schedule_rows(enrollment) -> list:
    rows = []
    for inst in enrollment.installments.exclude(status=Installment.STATUS_CANCELLED).order_by("installment_number"):
        rows.append({
            "number": inst.installment_number,
            "concept": installment_concept(inst.installment_number),
            "amount": inst.amount,
            "late_fee": inst.late_fee,
            "total_due": inst.total_due,
            "due_date": inst.due_date,
            "paid_date": inst.paid_date,
            "paid_amount": inst.paid_amount,
            "status": inst.status,
            "status_label": status_label(inst.status),
            "status_color": status_color(inst.status),
        })
    return rows


def _rows_as_text(rows) -> str:
    lines = []
    for r in rows:
        lines.append(
            f"{r['number']:>2}. {r['concept']:<28} {money(r['total_due']):>14} "
            f"vence {_fmt_date(r['due_date'])}  {r['status_label']}"
        )
    return "\n".join(lines)


def schedule_variables(student, enrollment, now=None) -> dict:
    now = timezone.localtime(now) if now else timezone.localtime()
    plan = enrollment.payment_plan
    installments = enrollment.installments.exclude(status=Installment.STATUS_CANCELLED)

    total = sum((i.total_due for i in installments), ZERO)
    # total pagado: seulement les cuotas vérifiées
    verified_paid = sum(
        (i.paid_amount or ZERO for i in installments if i.status == Installment.STATUS_VERIFIED), ZERO
    )
    rows = schedule_rows(enrollment)
    table = _rows_as_text(rows)

    return {
        "nombre_estudiante": student.full_name,
        "codigo_matricula": enrollment_code(enrollment),
        "nivel_academico": plan.level_label if plan else "N/A",
        "plan_pago": plan.name if plan else "-",
        "fecha_matricula": _fmt_date(enrollment.enrollment_date),
        "nombre_asesor": _user_label(student.registered_by, default="No asignado"),
        "monto_total": money(total),
        "total_pagado": money(verified_paid),
        "total_pendiente": money(enrollment.total_pending),
        "filas_cuotas": table,
        "tabla_cuotas": table,
        "fecha_generacion": now.strftime("%d/%m/%Y %H:%M"),
        "codigo_cronograma": schedule_code(student, now),
        "nombre_escuela": getattr(settings, "UNCED_SCHOOL_NAME", "UNCED"),
    }


def template_for(key: str) -> str:
    return Setting.get(key, default="") or ""
