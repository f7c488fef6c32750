# core/pdf/receipt.py
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
    COLOR_ACCENT,
    COLOR_PRIMARY,
    _D,
    _card,
    _draw_footer,
    _draw_header,
    _kv,
    _paragraph,
    _section,
)
from core.services.documents import RECEIPT_TEMPLATE_KEY, receipt_variables, render_template, template_for
from core.utils.receipts import receipt_number, receipt_storage_path

logger = logging.getLogger(__name__)


def _draw_receipt(c, voucher, variables, template_text):
    w, h = A4
    margin_x = 12 * mm
    card_w = w - 2 * margin_x
    y_top = h - 12 * mm
    card_h = h - 24 * mm

    inst = voucher.installment

    _card(c, margin_x, y_top, card_w, card_h)
    _draw_header(
        c, margin_x, y_top, card_w,
        "BOLETA DE PAGO",
        variables["numero_boleta"],
        variables["codigo_matricula"],
    )

    left_x = margin_x + 10 * mm
    right_x = margin_x + card_w / 2 + 4 * mm
    col_w = card_w / 2 - 16 * mm

    # ---------- estudiante ----------
    y = y_top - 38 * mm
    _section(c, left_x, y, "Datos del estudiante")
    y -= 9 * mm
    _kv(c, left_x, y, "Nombre", variables["nombre_estudiante"], max_w=col_w, highlight=True)
    _kv(c, right_x, y, "DNI", variables["dni_estudiante"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Correo", variables["email_estudiante"], max_w=col_w)
    _kv(c, right_x, y, "Teléfono", variables["telefono_estudiante"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Plan de pago", variables["plan_pago"], max_w=col_w)
    _kv(c, right_x, y, "Nivel académico", variables["nivel_academico"], max_w=col_w)

    # ---------- detalle ----------
    y -= 16 * mm
    _section(c, left_x, y, "Detalle del pago")
    y -= 9 * mm
    _kv(c, left_x, y, "Concepto", variables["concepto"], max_w=col_w, highlight=True)
    _kv(c, right_x, y, "Método de pago", variables["metodo_pago"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Fecha de pago", variables["fecha_pago"], max_w=col_w)
    _kv(c, right_x, y, "Referencia", variables["referencia"], max_w=col_w)
    y -= 11 * mm
    _kv(c, left_x, y, "Monto de cuota", variables["monto_cuota"], max_w=col_w)
    if _D(inst.late_fee) > 0:
        _kv(c, right_x, y, "Mora", variables["mora"], max_w=col_w, color="#dc2626")

    # ---------- monto ----------
    y -= 14 * mm
    box_h = 24 * mm
    c.setFillColor(colors.HexColor("#ecfdf5"))
    c.setStrokeColor(colors.HexColor(COLOR_ACCENT))
    c.roundRect(left_x, y - box_h, card_w - 20 * mm, box_h, 5 * mm, fill=1, stroke=1)

    c.setFillColor(colors.HexColor("#065f46"))
    c.setFont("Helvetica-Bold", 9)
    c.drawCentredString(margin_x + card_w / 2, y - 6 * mm, "MONTO TOTAL PAGADO")
    c.setFont("Helvetica-Bold", 18)
    c.setFillColor(colors.HexColor(COLOR_PRIMARY))
    c.drawCentredString(margin_x + card_w / 2, y - 14 * mm, variables["monto_pagado"])
    c.setFont("Helvetica-Oblique", 8)
    c.setFillColor(colors.HexColor("#334155"))
    c.drawCentredString(margin_x + card_w / 2, y - 20 * mm, f"({variables['monto_palabras']})")
    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)
    y -= box_h + 8 * mm

    # ---------- plantilla libre ----------
    if template_text:
        _section(c, left_x, y, "Observaciones")
        _paragraph(c, left_x, y - 8 * mm, template_text, card_w - 20 * mm, min_y=60 * mm)

    # ---------- sello ----------
    stamp_w = 70 * mm
    stamp_x = margin_x + card_w - stamp_w - 10 * mm
    stamp_y = 34 * mm
    c.setStrokeColor(colors.HexColor(COLOR_ACCENT))
    c.setLineWidth(1.6)
    c.roundRect(stamp_x, stamp_y, stamp_w, 20 * mm, 3 * mm, fill=0, stroke=1)
    c.setFillColor(colors.HexColor(COLOR_ACCENT))
    c.setFont("Helvetica-Bold", 11)
    c.drawCentredString(stamp_x + stamp_w / 2, stamp_y + 13 * mm, "PAGO VERIFICADO")
    c.setFont("Helvetica", 7.5)
    c.drawCentredString(stamp_x + stamp_w / 2, stamp_y + 8 * mm, f"Verificado por: {variables['cajero']}")
    c.drawCentredString(
        stamp_x + stamp_w / 2, stamp_y + 4 * mm,
        f"{variables['fecha_emision']} {variables['hora_emision']}",
    )
    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)
    c.setLineWidth(0.5)

    _draw_footer(c, margin_x, 16 * mm, card_w, timezone.localtime())


def build_receipt_pdf_bytes(voucher, now=None) -> bytes:
    variables = receipt_variables(voucher, now=now)
    template_text = render_template(template_for(RECEIPT_TEMPLATE_KEY), variables)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Boleta {variables['numero_boleta']}")

    _draw_receipt(c, voucher, variables, template_text)

    c.showPage()
    c.save()
    out = buffer.getvalue()
    buffer.close()
    return out


def generate_payment_receipt(voucher):
    """
    Génère la boleta PDF d'un voucher approuvé et la stocke.
    Retourne le chemin relatif, ou None si la génération échoue (erreur loggée).
    """
    if voucher.status != voucher.STATUS_APPROVED:
        logger.warning("Boleta no generada: voucher=%s no aprobado (%s)", voucher.pk, voucher.status)
        return None

    try:
        now = timezone.localtime()
        number = voucher.receipt_number or receipt_number(voucher, now)
        if not voucher.receipt_number:
            voucher.receipt_number = number

        pdf = build_receipt_pdf_bytes(voucher, now=now)
        path = default_storage.save(receipt_storage_path(voucher, number, now), ContentFile(pdf))

        voucher.receipt_path = path
        voucher.save(update_fields=["receipt_number", "receipt_path"])
    except Exception:
        logger.error("Error generando boleta: voucher=%s", voucher.pk, exc_info=True)
        return None

    logger.info("Boleta generada: voucher=%s numero=%s path=%s", voucher.pk, number, path)
    return path
