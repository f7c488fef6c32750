# core/pdf/schedule.py
import logging
from io import BytesIO

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from core.pdf.common import (
    COLOR_BORDER,
    COLOR_SOFT,
    COLOR_TEXT,
    _card,
    _date,
    _draw_footer,
    _draw_header,
    _ellipsize,
    _kv,
    _money,
    _paragraph,
    _section,
)
from core.services.documents import (
    SCHEDULE_TEMPLATE_KEY,
    render_template,
    schedule_rows,
    schedule_variables,
    template_for,
)
from core.utils.receipts import schedule_storage_path

logger = logging.getLogger(__name__)

HEADERS = ["N°", "Concepto", "Monto", "Vence", "Fecha pago", "Pagado", "Estado"]
COL_MM = [9, 46, 24, 21, 21, 23, 22]
ROW_H = 7.4 * mm


def _draw_table_header(c, x, y):
    c.setFillColor(colors.HexColor(COLOR_SOFT))
    c.setStrokeColor(colors.HexColor(COLOR_BORDER))
    total_w = sum(COL_MM) * mm
    c.rect(x, y - ROW_H, total_w, ROW_H, fill=1, stroke=1)

    c.setFillColor(colors.HexColor(COLOR_TEXT))
    c.setFont("Helvetica-Bold", 8)
    cur = x
    for label, wmm in zip(HEADERS, COL_MM):
        c.drawString(cur + 2 * mm, y - ROW_H + 2.6 * mm, label)
        cur += wmm * mm
    c.setFillColor(colors.black)
    return y - ROW_H


def _draw_row(c, x, y, row):
    total_w = sum(COL_MM) * mm
    c.setFillColor(colors.white)
    c.setStrokeColor(colors.HexColor(COLOR_BORDER))
    c.rect(x, y - ROW_H, total_w, ROW_H, fill=1, stroke=1)

    values = [
        str(row["number"]),
        row["concept"],
        _money(row["total_due"]),
        _date(row["due_date"]),
        _date(row["paid_date"]),
        _money(row["paid_amount"]),
    ]

    c.setFont("Helvetica", 8)
    c.setFillColor(colors.HexColor(COLOR_TEXT))
    cur = x
    for value, wmm in zip(values, COL_MM):
        c.drawString(cur + 2 * mm, y - ROW_H + 2.6 * mm, _ellipsize(value, wmm * mm - 4 * mm, "Helvetica", 8))
        cur += wmm * mm

    # statut en pastille colorée
    pill_w = COL_MM[-1] * mm - 4 * mm
    c.setFillColor(colors.HexColor(row["status_color"]))
    c.roundRect(cur + 2 * mm, y - ROW_H + 1.4 * mm, pill_w, ROW_H - 2.8 * mm, 2 * mm, fill=1, stroke=0)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 7)
    c.drawCentredString(cur + 2 * mm + pill_w / 2, y - ROW_H + 2.8 * mm, row["status_label"])
    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)
    return y - ROW_H


def _new_page(c, variables):
    w, h = A4
    margin_x = 12 * mm
    card_w = w - 2 * margin_x
    y_top = h - 12 * mm
    _card(c, margin_x, y_top, card_w, h - 24 * mm)
    _draw_header(
        c, margin_x, y_top, card_w,
        "CRONOGRAMA DE PAGOS",
        variables["codigo_cronograma"],
        variables["codigo_matricula"],
    )
    return margin_x, card_w, y_top


def build_schedule_pdf_bytes(student, enrollment, now=None) -> bytes:
    variables = schedule_variables(student, enrollment, now=now)
    rows = schedule_rows(enrollment)
    template_text = render_template(template_for(SCHEDULE_TEMPLATE_KEY), variables)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Cronograma {variables['codigo_cronograma']}")

    margin_x, card_w, y_top = _new_page(c, variables)
    left_x = margin_x + 10 * mm
    right_x = margin_x + card_w / 2 + 4 * mm
    col_w = card_w / 2 - 16 * mm

    y = y_top - 38 * mm
    _section(c, left_x, y, "Datos de la matrícula")
    y -= 9 * mm
    _kv(c, left_x, y, "Estudiante", variables["nombre_estudiante"], max_w=col_w, highlight=True)
    _kv(c, right_x, y, "Código de matrícula", variables["codigo_matricula"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Plan de pago", variables["plan_pago"], max_w=col_w)
    _kv(c, right_x, y, "Nivel académico", variables["nivel_academico"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Fecha de matrícula", variables["fecha_matricula"], max_w=col_w)
    _kv(c, right_x, y, "Asesor", variables["nombre_asesor"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Monto total", variables["monto_total"], max_w=col_w, highlight=True)
    _kv(c, right_x, y, "Total pagado", variables["total_pagado"], max_w=col_w, color="#17BC91")
    y -= 11 * mm
    _kv(c, left_x, y, "Total pendiente", variables["total_pendiente"], max_w=col_w, color="#F98613")

    y -= 14 * mm
    _section(c, left_x, y, "Cuotas")
    y = _draw_table_header(c, left_x, y - 5 * mm)

    bottom = 32 * mm
    for row in rows:
        if y - ROW_H < bottom:
            _draw_footer(c, margin_x, 16 * mm, card_w, timezone.localtime())
            c.showPage()
            margin_x, card_w, y_top = _new_page(c, variables)
            y = _draw_table_header(c, left_x, y_top - 34 * mm)
        y = _draw_row(c, left_x, y, row)

    if template_text:
        y -= 8 * mm
        if y < bottom + 20 * mm:
            _draw_footer(c, margin_x, 16 * mm, card_w, timezone.localtime())
            c.showPage()
            margin_x, card_w, y_top = _new_page(c, variables)
            y = y_top - 34 * mm
        _paragraph(c, left_x, y, template_text, card_w - 20 * mm, min_y=bottom)

    _draw_footer(c, margin_x, 16 * mm, card_w, timezone.localtime())
    c.showPage()
    c.save()
    out = buffer.getvalue()
    buffer.close()
    return out


def generate_payment_schedule(student):
    """
    Cronograma PDF de la matrícula active de l'étudiant.
    Retourne le chemin relatif, ou None (pas de matrícula active / erreur loggée).
    """
    enrollment = (
        student.enrollments
        .select_related("payment_plan", "payment_plan__academic_level")
        .filter(status="active")
        .order_by("-enrollment_date", "-id")
        .first()
    )
    if enrollment is None:
        logger.error("Cronograma no generado: estudiante=%s sin matrícula activa", student.pk)
        return None

    try:
        now = timezone.localtime()
        pdf = build_schedule_pdf_bytes(student, enrollment, now=now)
        path = default_storage.save(schedule_storage_path(student, now), ContentFile(pdf))
    except Exception:
        logger.error("Error generando cronograma: estudiante=%s", student.pk, exc_info=True)
        return None

    logger.info("Cronograma generado: estudiante=%s path=%s", student.pk, path)
    return path
