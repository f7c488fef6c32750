# core/services/reports.py
import openpyxl
from openpyxl.styles import Alignment, Font

from core.models import InstallmentVoucher
from core.utils.words import installment_concept, payment_method_label, status_label


def _style_header(ws, n_cols):
    for col in range(1, n_cols + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")


def _auto_width(ws):
    for col in ws.columns:
        max_len = 0
        col_letter = col[0].column_letter
        for cell in col:
            val = str(cell.value) if cell.value is not None else ""
            max_len = max(max_len, len(val))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 40)


def payments_workbook(from_date=None, to_date=None, status="approved"):
    """
    Export caja: un voucher par ligne (montant appliqué, cuota, boleta).
    """
    qs = (
        InstallmentVoucher.objects
        .select_related("installment__enrollment__student", "installment__enrollment__payment_plan", "reviewed_by")
        .order_by("payment_date", "id")
    )
    if status:
        qs = qs.filter(status=status)
    if from_date:
        qs = qs.filter(payment_date__gte=from_date)
    if to_date:
        qs = qs.filter(payment_date__lte=to_date)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Pagos"

    headers = [
        "Fecha pago", "Boleta", "Código matrícula", "Estudiante", "DNI", "Plan",
        "Concepto", "Monto declarado", "Monto aplicado", "Método", "Referencia",
        "Origen", "Estado", "Revisado por",
    ]
    ws.append(headers)
    _style_header(ws, len(headers))

    for v in qs:
        inst = v.installment
        enrollment = inst.enrollment
        student = enrollment.student
        reviewer = v.reviewed_by.get_username() if v.reviewed_by else ""
        ws.append([
            v.payment_date.strftime("%d/%m/%Y") if v.payment_date else "",
            v.receipt_number or "",
            enrollment.enrollment_code,
            student.full_name,
            student.document_number or "",
            enrollment.payment_plan.name,
            installment_concept(inst.installment_number),
            float(v.declared_amount or 0),
            float(v.effective_amount or 0),
            payment_method_label(v.payment_method),
            v.transaction_reference or "",
            v.get_payment_source_display(),
            v.get_status_display(),
            reviewer,
        ])

    _auto_width(ws)
    return wb


def overdue_workbook(installments):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Vencidos"

    headers = [
        "Código matrícula", "Estudiante", "Teléfono", "Cuota", "Vencimiento",
        "Monto", "Mora", "Pagado", "Saldo", "Estado",
    ]
    ws.append(headers)
    _style_header(ws, len(headers))

    for inst in installments:
        enrollment = inst.enrollment
        ws.append([
            enrollment.enrollment_code,
            enrollment.student.full_name,
            enrollment.student.phone or "",
            inst.installment_number,
            inst.due_date.strftime("%d/%m/%Y"),
            float(inst.amount or 0),
            float(inst.late_fee or 0),
            float(inst.paid_amount or 0),
            float(inst.pending_amount),
            status_label(inst.status),
        ])

    _auto_width(ws)
    return wb
