# core/utils/words.py
# Libellés et montants en toutes lettres (espagnol) pour boletas et cronogramas.
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ORDINALS = {
    1: "Primera", 2: "Segunda", 3: "Tercera", 4: "Cuarta",
    5: "Quinta", 6: "Sexta", 7: "Séptima", 8: "Octava",
    9: "Novena", 10: "Décima", 11: "Undécima", 12: "Duodécima",
}

PAYMENT_METHOD_LABELS = {
    "card": "Tarjeta de Crédito/Débito",
    "transfer": "Transferencia Bancaria",
    "cash": "Efectivo",
    "yape": "Yape",
    "deposit": "Depósito Bancario",
}

STATUS_LABELS = {
    "pending": "PENDIENTE",
    "paid": "PAGADO",
    "verified": "VERIFICADO",
    "overdue": "VENCIDO",
    "cancelled": "ANULADO",
}

STATUS_COLORS = {
    "pending": "#F98613",
    "paid": "#3b82f6",
    "verified": "#17BC91",
    "overdue": "#ef4444",
    "cancelled": "#64748b",
}

_UNITS = ["", "uno", "dos", "tres", "cuatro", "cinco", "seis", "siete", "ocho", "nueve"]
_TEENS = ["diez", "once", "doce", "trece", "catorce", "quince",
          "dieciséis", "diecisiete", "dieciocho", "diecinueve"]
_TENS = ["", "", "veinte", "treinta", "cuarenta", "cincuenta",
         "sesenta", "setenta", "ochenta", "noventa"]
_VEINTI = ["", "veintiuno", "veintidós", "veintitrés", "veinticuatro", "veinticinco",
           "veintiséis", "veintisiete", "veintiocho", "veintinueve"]
_HUNDREDS = ["", "ciento", "doscientos", "trescientos", "cuatrocientos", "quinientos",
             "seiscientos", "setecientos", "ochocientos", "novecientos"]

CENT = Decimal("0.01")


def _D(x) -> Decimal:
    try:
        return Decimal(str(x if x is not None else "0").replace(",", "."))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def money(x) -> str:
    return f"S/ {_D(x).quantize(CENT, rounding=ROUND_HALF_UP):,.2f}"


def ordinal_text(n: int) -> str:
    return ORDINALS.get(int(n), f"{int(n)}ª")


def installment_concept(number: int) -> str:
    if int(number) == 1:
        return "Matrícula + Primera Cuota"
    return f"Cuota {ordinal_text(number)}"


def payment_method_label(method: str) -> str:
    method = (method or "").strip()
    return PAYMENT_METHOD_LABELS.get(method, method.capitalize())


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, (status or "").upper())


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "#64748b")


def _hundreds_to_words(n: int) -> str:
    words = ""

    if n >= 100:
        if n == 100:
            return "cien"
        words += _HUNDREDS[n // 100] + " "
        n = n % 100

    if 10 <= n <= 19:
        return (words + _TEENS[n - 10]).strip()

    if n >= 20:
        ten, unit = divmod(n, 10)
        if unit == 0:
            return (words + _TENS[ten]).strip()
        if ten == 2:
            return (words + _VEINTI[unit]).strip()
        return (words + _TENS[ten] + " y " + _UNITS[unit]).strip()

    if n > 0:
        return (words + _UNITS[n]).strip()

    return words.strip()


def _apocope(words: str) -> str:
    # devant "mil" / "millones": veintiún, treinta y un
    if words.endswith("veintiuno"):
        return words[:-3] + "ún"
    if words.endswith("uno"):
        return words[:-1]
    return words


def amount_to_words(amount) -> str:
    """
    1250.50 => "MIL DOSCIENTOS CINCUENTA CON 50/100 SOLES"
    Montants jusqu'à 999 999 999,99.
    """
    value = _D(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    if value < 0:
        value = -value

    int_part = int(value)
    dec_part = int((value - int_part) * 100)
    if int_part >= 1_000_000_000:
        raise ValueError(f"Monto fuera de rango: {value}")

    words = ""
    millions, int_part = divmod(int_part, 1_000_000)
    if millions == 1:
        words += "un millón "
    elif millions > 1:
        words += _apocope(_hundreds_to_words(millions)) + " millones "

    thousands, int_part = divmod(int_part, 1000)
    if thousands == 1:
        words += "mil "
    elif thousands > 1:
        words += _apocope(_hundreds_to_words(thousands)) + " mil "

    if int_part > 0:
        words += _hundreds_to_words(int_part)

    words = words.strip() or "cero"
    return f"{words} con {dec_part:02d}/100 soles".upper()
