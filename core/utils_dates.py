# core/utils_dates.py
from __future__ import annotations

from datetime import date

from dateutil.relativedelta import relativedelta


def add_months(d: date, months: int) -> date:
    # relativedelta clamp fin de mois: 31/01 + 1 mois => 28/02 (ou 29)
    return d + relativedelta(months=months)


def due_date_for(base: date, number: int) -> date:
    """
    Cuota N => base + (N - 1) mois.
    """
    return add_months(base, max(int(number or 1), 1) - 1)


def signed_days(d_from: date, d_to: date) -> int:
    """Jours de d_from vers d_to (négatif si d_to est passé)."""
    return (d_to - d_from).days
