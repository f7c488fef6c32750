from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile

from core.models import AcademicLevel, PaymentPlan, Student
from core.services.enrollment import create_enrollment, verify_enrollment
from core.utils_roles import add_user_to_group

User = get_user_model()

PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF"


def voucher_file(name="voucher.pdf"):
    return SimpleUploadedFile(name, PDF_BYTES, content_type="application/pdf")


class LedgerFixturesMixin:
    """
    Plan de 3 cuotas de S/ 300 (mora 5 %, grâce 5 jours), matrícula du 10/01/2025.
    """
    enrollment_date = date(2025, 1, 10)

    def make_user(self, username, *groups, **extra):
        user = User.objects.create_user(username=username, password="secret123", **extra)
        for g in groups:
            add_user_to_group(user, g)
        return user

    def make_plan(self, **kwargs):
        if not hasattr(self, "level"):
            self.level = AcademicLevel.objects.create(name="Inglés Básico", code="BAS")
        defaults = {
            "name": "Plan Trimestral",
            "academic_level": self.level,
            "installments_count": 3,
            "monthly_amount": Decimal("300.00"),
            "total_amount": Decimal("900.00"),
            "late_fee_percentage": Decimal("5.00"),
            "grace_period_days": 5,
        }
        defaults.update(kwargs)
        return PaymentPlan.objects.create(**defaults)

    def make_student(self, user=None, **kwargs):
        defaults = {
            "first_name": "Ana",
            "paternal_last_name": "Quispe",
            "maternal_last_name": "Mamani",
            "document_number": "70000001",
            "email": "ana.quispe@example.com",
            "phone": "999111222",
            "user": user,
        }
        defaults.update(kwargs)
        return Student.objects.create(**defaults)

    def make_enrollment(self, student=None, plan=None, verified=True, enrollment_date=None, verified_by=None):
        student = student or self.make_student()
        plan = plan or self.make_plan()
        enrollment = create_enrollment(student, plan, enrollment_date=enrollment_date or self.enrollment_date)
        if verified:
            verify_enrollment(enrollment, verified_by)
            student.refresh_from_db()
        return enrollment

    def installments(self, enrollment):
        return list(enrollment.installments.order_by("installment_number"))
