from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import core.models


def audit_fields(suffix):
    return [
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        (
            "created_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name=f"created_{suffix}_set",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
        (
            "updated_by",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name=f"updated_{suffix}_set",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AcademicLevel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("academiclevel"),
                ("name", models.CharField(max_length=80)),
                ("code", models.CharField(max_length=20, unique=True)),
                ("color", models.CharField(default="#073372", max_length=7)),
                ("order", models.PositiveSmallIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["order", "name"]},
        ),
        migrations.CreateModel(
            name="PaymentPlan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("paymentplan"),
                ("name", models.CharField(max_length=120)),
                (
                    "installments_count",
                    models.PositiveSmallIntegerField(
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(12),
                        ]
                    ),
                ),
                ("monthly_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                (
                    "discount_percentage",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.00")),
                            django.core.validators.MaxValueValidator(Decimal("100")),
                        ],
                    ),
                ),
                (
                    "duration_months",
                    models.PositiveSmallIntegerField(
                        default=1, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                (
                    "late_fee_percentage",
                    models.DecimalField(
                        decimal_places=2,
                        default=core.models._default_late_fee_percentage,
                        max_digits=5,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.00")),
                            django.core.validators.MaxValueValidator(Decimal("100")),
                        ],
                    ),
                ),
                ("grace_period_days", models.PositiveSmallIntegerField(default=core.models._default_grace_period_days)),
                ("is_active", models.BooleanField(default=True)),
                ("description", models.TextField(blank=True)),
                (
                    "academic_level",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payment_plans",
                        to="core.academiclevel",
                    ),
                ),
            ],
            options={"ordering": ["academic_level__order", "installments_count", "name"]},
        ),
        migrations.CreateModel(
            name="Setting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=100, unique=True)),
                (
                    "type",
                    models.CharField(
                        choices=[("text", "Texto"), ("template", "Plantilla"), ("email", "Correo")],
                        default="text",
                        max_length=20,
                    ),
                ),
                ("content", models.TextField(blank=True)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["type", "key"]},
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("student"),
                ("first_name", models.CharField(max_length=80)),
                ("paternal_last_name", models.CharField(max_length=80)),
                ("maternal_last_name", models.CharField(blank=True, max_length=80)),
                (
                    "document_type",
                    models.CharField(
                        choices=[("DNI", "DNI"), ("CE", "Carné de extranjería"), ("PASAPORTE", "Pasaporte")],
                        default="DNI",
                        max_length=10,
                    ),
                ),
                ("document_number", models.CharField(blank=True, db_index=True, max_length=20)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                (
                    "prospect_status",
                    models.CharField(
                        choices=[
                            ("registrado", "Registrado"),
                            ("propuesta_enviada", "Propuesta enviada"),
                            ("pago_por_verificar", "Pago por verificar"),
                            ("pago_reportado", "Pago reportado"),
                            ("verificacion_pago", "Verificación de pago"),
                            ("matriculado", "Matriculado"),
                        ],
                        db_index=True,
                        default="registrado",
                        max_length=30,
                    ),
                ),
                ("enrollment_verified", models.BooleanField(default=False)),
                ("enrollment_verified_at", models.DateTimeField(blank=True, null=True)),
                ("payment_date", models.DateField(blank=True, null=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                (
                    "academic_level",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="students",
                        to="core.academiclevel",
                    ),
                ),
                (
                    "enrollment_verified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="verified_students",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "registered_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Asesor de ventas",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="registered_students",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="student",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["paternal_last_name", "maternal_last_name", "first_name"]},
        ),
        migrations.CreateModel(
            name="Enrollment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("enrollment"),
                ("enrollment_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("enrollment_date", models.DateField(default=django.utils.timezone.localdate)),
                ("enrollment_code", models.CharField(blank=True, db_index=True, max_length=30)),
                ("enrollment_fee_verified", models.BooleanField(default=False)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pendiente"),
                            ("active", "Activa"),
                            ("completed", "Completada"),
                            ("cancelled", "Anulada"),
                        ],
                        default="pending",
                        max_length=12,
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "payment_plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="enrollments",
                        to="core.paymentplan",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="enrollments",
                        to="core.student",
                    ),
                ),
                (
                    "verified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="verified_enrollments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-enrollment_date", "-id"]},
        ),
        migrations.CreateModel(
            name="Installment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("installment"),
                (
                    "installment_number",
                    models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("due_date", models.DateField()),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("late_fee", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("remaining_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("paid_date", models.DateField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pendiente"),
                            ("paid", "Pagado"),
                            ("verified", "Verificado"),
                            ("overdue", "Vencido"),
                            ("cancelled", "Anulado"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                (
                    "payment_type",
                    models.CharField(
                        blank=True,
                        choices=[("full", "Pago completo"), ("partial", "Pago parcial"), ("combined", "Pago combinado")],
                        max_length=10,
                        null=True,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                (
                    "enrollment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="installments",
                        to="core.enrollment",
                    ),
                ),
                (
                    "verified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="verified_installments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["installment_number", "id"],
                "indexes": [models.Index(fields=["due_date"], name="installment_due_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("enrollment", "installment_number"),
                        name="unique_installment_enrollment_number",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="InstallmentVoucher",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                *audit_fields("installmentvoucher"),
                (
                    "voucher_file",
                    models.FileField(
                        blank=True,
                        upload_to=core.models.voucher_upload_path,
                        validators=[
                            django.core.validators.FileExtensionValidator(
                                allowed_extensions=["pdf", "jpg", "jpeg", "png", "webp"]
                            )
                        ],
                    ),
                ),
                ("declared_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("verified_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("payment_date", models.DateField(default=django.utils.timezone.localdate)),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("cash", "Efectivo"),
                            ("transfer", "Transferencia Bancaria"),
                            ("deposit", "Depósito Bancario"),
                            ("card", "Tarjeta de Crédito/Débito"),
                            ("yape", "Yape"),
                        ],
                        default="transfer",
                        max_length=10,
                    ),
                ),
                ("transaction_reference", models.CharField(blank=True, max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pendiente"), ("approved", "Aprobado"), ("rejected", "Rechazado")],
                        db_index=True,
                        default="pending",
                        max_length=10,
                    ),
                ),
                (
                    "payment_type",
                    models.CharField(
                        choices=[("full", "Pago completo"), ("partial", "Pago parcial")],
                        default="full",
                        max_length=10,
                    ),
                ),
                ("applied_to_total", models.BooleanField(default=False)),
                (
                    "payment_source",
                    models.CharField(
                        choices=[
                            ("voucher", "Voucher subido"),
                            ("cashier", "Registro en caja"),
                            ("distributed", "Pago distribuido"),
                        ],
                        default="voucher",
                        max_length=12,
                    ),
                ),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.CharField(blank=True, max_length=500)),
                ("notes", models.TextField(blank=True)),
                ("receipt_number", models.CharField(blank=True, db_index=True, max_length=30)),
                ("receipt_path", models.CharField(blank=True, max_length=255)),
                ("receipt_sent_at", models.DateTimeField(blank=True, null=True)),
                (
                    "installment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="vouchers",
                        to="core.installment",
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="reviewed_vouchers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="uploaded_vouchers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.CreateModel(
            name="PlanChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("change_date", models.DateTimeField(auto_now_add=True)),
                ("reason", models.TextField(blank=True)),
                ("old_installments_count", models.PositiveSmallIntegerField(default=0)),
                ("new_installments_count", models.PositiveSmallIntegerField(default=0)),
                ("old_total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("new_total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                (
                    "changed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "enrollment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="plan_changes",
                        to="core.enrollment",
                    ),
                ),
                (
                    "new_plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="core.paymentplan",
                    ),
                ),
                (
                    "old_plan",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="core.paymentplan",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="plan_changes",
                        to="core.student",
                    ),
                ),
            ],
            options={"ordering": ["-change_date", "-id"]},
        ),
        migrations.CreateModel(
            name="InstallmentReminder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "channel",
                    models.CharField(
                        choices=[("email", "Correo"), ("notice", "Aviso")],
                        default="notice",
                        max_length=10,
                    ),
                ),
                ("message", models.CharField(blank=True, max_length=255)),
                ("sent_at", models.DateTimeField(auto_now_add=True)),
                (
                    "installment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reminders",
                        to="core.installment",
                    ),
                ),
            ],
            options={"ordering": ["-sent_at"]},
        ),
    ]
