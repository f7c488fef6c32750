# core/utils/receipts.py
from datetime import datetime

from django.utils import timezone


def receipt_number(voucher, when: datetime = None) -> str:
    """BOL-YYYYMM-000123 (id du voucher)."""
    when = when or timezone.localtime()
    return f"BOL-{when:%Y%m}-{voucher.pk:06d}"


def enrollment_code(enrollment) -> str:
    if (enrollment.enrollment_code or "").strip():
        return enrollment.enrollment_code
    year = enrollment.enrollment_date.year if enrollment.enrollment_date else timezone.localdate().year
    return f"MAT-{year}-{enrollment.pk:06d}"


def schedule_code(student, when: datetime = None) -> str:
    when = when or timezone.localtime()
    return f"CRON-{when:%Y}-{student.pk:06d}"


def receipt_storage_path(voucher, number: str, when: datetime = None) -> str:
    when = when or timezone.localtime()
    student_id = voucher.installment.enrollment.student_id
    return f"payment_receipts/{student_id}/boleta_{number}_{when:%Y%m%d%H%M%S}.pdf"


def schedule_storage_path(student, when: datetime = None) -> str:
    when = when or timezone.localtime()
    return f"payment_schedules/cronograma_pagos_{student.pk}_{when:%Y%m%d%H%M%S}.pdf"
