# core/pdf/common.py
# Briques ReportLab partagées par la boleta et le cronograma.
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.staticfiles import finders
from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

COLOR_PRIMARY = "#073372"
COLOR_ACCENT = "#17BC91"
COLOR_BORDER = "#e2e8f0"
COLOR_SOFT = "#f8fafc"
COLOR_TEXT = "#0f172a"
COLOR_MUTED = "#475569"


# =========================
# Utils
# =========================
def _D(x):
    try:
        return Decimal(str(x if x is not None else "0").replace(",", "."))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def _money(x):
    return f"S/ {_D(x):,.2f}"


def _date(d, fmt="%d/%m/%Y"):
    return d.strftime(fmt) if d else "-"


def _ellipsize(text, max_w, font="Helvetica", size=9):
    s = str(text or "")
    if stringWidth(s, font, size) <= max_w:
        return s
    while s and stringWidth(s + "…", font, size) > max_w:
        s = s[:-1]
    return (s + "…") if s else ""


def _card(c, x, y_top, w, h, bg="#ffffff"):
    c.setFillColor(colors.HexColor("#e5e7eb"))
    c.roundRect(x - 0.8, y_top - h - 0.8, w + 1.6, h + 1.6, 6 * mm, fill=1, stroke=0)

    c.setFillColor(colors.HexColor(bg))
    c.setStrokeColor(colors.HexColor(COLOR_BORDER))
    c.setLineWidth(0.9)
    c.roundRect(x, y_top - h, w, h, 6 * mm, fill=1, stroke=1)

    c.setStrokeColor(colors.black)
    c.setLineWidth(0.5)


def _line(c, x1, y, x2, color_hex=COLOR_BORDER, lw=0.9):
    c.setStrokeColor(colors.HexColor(color_hex))
    c.setLineWidth(lw)
    c.line(x1, y, x2, y)
    c.setStrokeColor(colors.black)
    c.setLineWidth(0.5)


def _pill(c, x, y, text, wmm=76, bg="#eef2ff", fg=COLOR_PRIMARY):
    c.setFillColor(colors.HexColor(bg))
    c.roundRect(x, y, wmm * mm, 8 * mm, 4 * mm, fill=1, stroke=0)
    c.setFillColor(colors.HexColor(fg))
    c.setFont("Helvetica-Bold", 9)
    c.drawString(x + 4 * mm, y + 2.2 * mm, _ellipsize(text, (wmm * mm) - 8 * mm, "Helvetica-Bold", 9))
    c.setFillColor(colors.black)


def _section(c, x, y, t, accent=COLOR_PRIMARY):
    c.setFont("Helvetica-Bold", 10)
    c.setFillColor(colors.HexColor(COLOR_TEXT))
    c.drawString(x, y, t)
    c.setStrokeColor(colors.HexColor(accent))
    c.setLineWidth(1.2)
    c.line(x, y - 2 * mm, x + 26 * mm, y - 2 * mm)
    c.setLineWidth(0.5)
    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)


def _kv(c, x, y, label, value, max_w=75 * mm, highlight=False, color=None):
    c.setFont("Helvetica", 7.5)
    c.setFillColor(colors.HexColor(COLOR_MUTED))
    c.drawString(x, y, str(label).upper())

    font = "Helvetica-Bold" if highlight else "Helvetica"
    size = 10 if highlight else 9
    c.setFont(font, size)
    c.setFillColor(colors.HexColor(color or (COLOR_PRIMARY if highlight else COLOR_TEXT)))
    c.drawString(x, y - 4 * mm, _ellipsize(value, max_w, font, size))
    c.setFillColor(colors.black)


def _paragraph(c, x, y, text, max_w, font="Helvetica", size=8.5, leading=11, min_y=20 * mm):
    """
    Texte libre multi-lignes (plantilla). Retourne le y après le dernier trait.
    """
    c.setFont(font, size)
    c.setFillColor(colors.HexColor(COLOR_TEXT))
    for raw in str(text or "").splitlines() or [""]:
        for line in simpleSplit(raw, font, size, max_w) or [""]:
            if y < min_y:
                return y
            c.drawString(x, y, line)
            y -= leading
    c.setFillColor(colors.black)
    return y


# =========================
# Header / footer
# =========================
def _load_logo():
    path = finders.find("img/logo_unced.png")
    if not path:
        return None
    try:
        return ImageReader(path)
    except OSError:
        return None


def _draw_header(c, x, y_top, w_card, title, code, badge):
    school = getattr(settings, "UNCED_SCHOOL_NAME", "UNCED")
    logo = _load_logo()

    c.setFillColor(colors.HexColor(COLOR_SOFT))
    c.roundRect(x, y_top - 18 * mm, w_card, 18 * mm, 6 * mm, fill=1, stroke=0)

    text_x = x + 9 * mm
    if logo:
        c.drawImage(logo, x + 9 * mm, y_top - 15.2 * mm, width=12 * mm, height=12 * mm, mask="auto")
        text_x = x + 24 * mm

    c.setFont("Helvetica-Bold", 14)
    c.setFillColor(colors.HexColor(COLOR_PRIMARY))
    c.drawString(text_x, y_top - 8.0 * mm, title)

    c.setFont("Helvetica", 8.5)
    c.setFillColor(colors.HexColor(COLOR_MUTED))
    c.drawString(text_x, y_top - 13.0 * mm, f"{school} • Centro de Idiomas")

    _pill(c, x + w_card - 72 * mm, y_top - 14.5 * mm, code, wmm=64, bg="#ecfdf5", fg=COLOR_ACCENT)
    if badge:
        _pill(c, x + w_card - 72 * mm, y_top - 24.5 * mm, badge, wmm=64, bg="#eef2ff", fg=COLOR_PRIMARY)

    _line(c, x + 10 * mm, y_top - 28 * mm, x + w_card - 10 * mm)


def _draw_footer(c, x, y, w_card, emitted_at):
    school = getattr(settings, "UNCED_SCHOOL_NAME", "UNCED")
    contact = getattr(settings, "UNCED_CONTACT_LINE", "")

    c.setFont("Helvetica", 7.5)
    c.setFillColor(colors.HexColor("#64748b"))
    c.drawCentredString(
        x + w_card / 2, y + 8 * mm,
        f"Este documento es un comprobante válido emitido por el sistema de {school}.",
    )
    c.drawCentredString(x + w_card / 2, y + 4 * mm, f"Fecha de emisión: {emitted_at:%d/%m/%Y %H:%M:%S}")
    if contact:
        c.drawCentredString(x + w_card / 2, y, f"Para consultas: {contact}")
    c.setFillColor(colors.black)
