# core/models.py
import os
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import FileExtensionValidator, MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from accounts.threadlocal import get_current_user

ZERO = Decimal("0.00")


def _default_late_fee_percentage():
    return Decimal(str(getattr(settings, "UNCED_DEFAULT_LATE_FEE_PERCENTAGE", "5.00")))


def _default_grace_period_days():
    return int(getattr(settings, "UNCED_DEFAULT_GRACE_PERIOD_DAYS", 5))


# =========================
# Audit
# =========================
class AuditBase(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="created_%(class)s_set"
    )

    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="updated_%(class)s_set"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        user = get_current_user()
        if user and getattr(user, "is_authenticated", False):
            if not self.pk and not self.created_by:
                self.created_by = user
            self.updated_by = user
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = set(update_fields) | {"updated_by", "updated_at"}
        super().save(*args, **kwargs)


# =========================
# Structure académique
# =========================
class AcademicLevel(AuditBase):
    name = models.CharField(max_length=80)
    code = models.CharField(max_length=20, unique=True)
    color = models.CharField(max_length=7, default="#073372")
    order = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["order", "name"]

    def __str__(self):
        return self.name


# =========================
# Plans de paiement
# =========================
class PaymentPlan(AuditBase):
    name = models.CharField(max_length=120)
    academic_level = models.ForeignKey(
        "AcademicLevel",
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="payment_plans",
    )

    installments_count = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    monthly_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    discount_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=ZERO,
        validators=[MinValueValidator(ZERO), MaxValueValidator(Decimal("100"))],
    )
    duration_months = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])

    # mora: % mensuel proratisé par jour, après la période de grâce
    late_fee_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=_default_late_fee_percentage,
        validators=[MinValueValidator(ZERO), MaxValueValidator(Decimal("100"))],
    )
    grace_period_days = models.PositiveSmallIntegerField(default=_default_grace_period_days)

    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["academic_level__order", "installments_count", "name"]

    def clean(self):
        if (self.monthly_amount or ZERO) < ZERO:
            raise ValidationError({"monthly_amount": "El monto mensual no puede ser negativo."})
        if (self.total_amount or ZERO) < ZERO:
            raise ValidationError({"total_amount": "El monto total no puede ser negativo."})

    @property
    def level_label(self) -> str:
        return self.academic_level.name if self.academic_level_id else "N/A"

    @property
    def has_enrollments(self) -> bool:
        return self.enrollments.exists()

    def __str__(self):
        return f"{self.name} ({self.installments_count} cuotas)"


# =========================
# Étudiants (prospect -> matriculado)
# =========================
class Student(AuditBase):
    DOCUMENT_CHOICES = [
        ("DNI", "DNI"),
        ("CE", "Carné de extranjería"),
        ("PASAPORTE", "Pasaporte"),
    ]

    STATUS_REGISTERED = "registrado"
    STATUS_PROPOSAL_SENT = "propuesta_enviada"
    STATUS_PAYMENT_TO_VERIFY = "pago_por_verificar"
    STATUS_PAYMENT_REPORTED = "pago_reportado"
    STATUS_VERIFYING = "verificacion_pago"
    STATUS_ENROLLED = "matriculado"

    PROSPECT_STATUS_CHOICES = [
        (STATUS_REGISTERED, "Registrado"),
        (STATUS_PROPOSAL_SENT, "Propuesta enviada"),
        (STATUS_PAYMENT_TO_VERIFY, "Pago por verificar"),
        (STATUS_PAYMENT_REPORTED, "Pago reportado"),
        (STATUS_VERIFYING, "Verificación de pago"),
        (STATUS_ENROLLED, "Matriculado"),
    ]

    first_name = models.CharField(max_length=80)
    paternal_last_name = models.CharField(max_length=80)
    maternal_last_name = models.CharField(max_length=80, blank=True)

    document_type = models.CharField(max_length=10, choices=DOCUMENT_CHOICES, default="DNI")
    document_number = models.CharField(max_length=20, blank=True, db_index=True)

    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="student",
    )
    registered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="registered_students",
        help_text="Asesor de ventas",
    )
    academic_level = models.ForeignKey(
        "AcademicLevel", on_delete=models.SET_NULL, null=True, blank=True, related_name="students"
    )

    prospect_status = models.CharField(
        max_length=30, choices=PROSPECT_STATUS_CHOICES, default=STATUS_REGISTERED, db_index=True
    )
    enrollment_verified = models.BooleanField(default=False)
    enrollment_verified_at = models.DateTimeField(null=True, blank=True)
    enrollment_verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="verified_students",
    )

    # date de base du cronograma (jour de paiement choisi)
    payment_date = models.DateField(null=True, blank=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["paternal_last_name", "maternal_last_name", "first_name"]

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.paternal_last_name, self.maternal_last_name]
        return " ".join(p.strip() for p in parts if p and p.strip())

    @property
    def is_enrolled(self) -> bool:
        return self.prospect_status == self.STATUS_ENROLLED and self.enrollment_verified

    def current_enrollment(self):
        """
        Matrícula activa si existe, sino la más reciente no anulada.
        """
        qs = self.enrollments.select_related("payment_plan", "payment_plan__academic_level")
        active = qs.filter(status=Enrollment.STATUS_ACTIVE).order_by("-enrollment_date", "-id").first()
        if active:
            return active
        return qs.exclude(status=Enrollment.STATUS_CANCELLED).order_by("-enrollment_date", "-id").first()

    def __str__(self):
        return self.full_name or f"Estudiante #{self.pk}"


# =========================
# Matrículas (inscriptions)
# =========================
class Enrollment(AuditBase):
    STATUS_PENDING = "pending"
    STATUS_ACTIVE = "active"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pendiente"),
        (STATUS_ACTIVE, "Activa"),
        (STATUS_COMPLETED, "Completada"),
        (STATUS_CANCELLED, "Anulada"),
    ]

    student = models.ForeignKey("Student", on_delete=models.CASCADE, related_name="enrollments")
    payment_plan = models.ForeignKey("PaymentPlan", on_delete=models.PROTECT, related_name="enrollments")

    enrollment_fee = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    enrollment_date = models.DateField(default=timezone.localdate)
    enrollment_code = models.CharField(max_length=30, blank=True, db_index=True)

    enrollment_fee_verified = models.BooleanField(default=False)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="verified_enrollments",
    )
    verified_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-enrollment_date", "-id"]

    def save(self, *args, **kwargs):
        creating = self.pk is None
        super().save(*args, **kwargs)

        # ✅ code auto UNE SEULE FOIS
        if creating and not (self.enrollment_code or "").strip():
            year = self.enrollment_date.year if self.enrollment_date else timezone.localdate().year
            self.enrollment_code = f"MAT-{year}-{self.pk:06d}"
            super().save(update_fields=["enrollment_code"])

    @property
    def payment_progress(self) -> float:
        installments = self.installments.exclude(status=Installment.STATUS_CANCELLED)
        total = installments.count()
        if total == 0:
            return 0.0
        done = installments.filter(status__in=Installment.SETTLED_STATUSES).count()
        return round(done / total * 100, 2)

    @property
    def total_amount(self) -> Decimal:
        agg = self.installments.exclude(status=Installment.STATUS_CANCELLED).aggregate(s=Sum("amount"))
        return agg["s"] or ZERO

    @property
    def total_paid(self) -> Decimal:
        agg = self.installments.aggregate(s=Sum("paid_amount"))
        return agg["s"] or ZERO

    @property
    def total_late_fees(self) -> Decimal:
        agg = self.installments.exclude(status=Installment.STATUS_CANCELLED).aggregate(s=Sum("late_fee"))
        return agg["s"] or ZERO

    @property
    def total_pending(self) -> Decimal:
        total = ZERO
        for inst in self.installments.exclude(status=Installment.STATUS_CANCELLED):
            total += inst.pending_amount
        return total

    def __str__(self):
        return f"{self.enrollment_code or self.pk} — {self.student}"


# =========================================
# Cuotas (échéances)
# =========================================
class Installment(AuditBase):
    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_VERIFIED = "verified"
    STATUS_OVERDUE = "overdue"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pendiente"),
        (STATUS_PAID, "Pagado"),
        (STATUS_VERIFIED, "Verificado"),
        (STATUS_OVERDUE, "Vencido"),
        (STATUS_CANCELLED, "Anulado"),
    ]

    # statuts qui comptent comme "payé" pour la progression
    SETTLED_STATUSES = (STATUS_PAID, STATUS_VERIFIED)
    # statuts où la mora peut encore évoluer
    OPEN_STATUSES = (STATUS_PENDING, STATUS_OVERDUE)

    PAYMENT_TYPE_CHOICES = [
        ("full", "Pago completo"),
        ("partial", "Pago parcial"),
        ("combined", "Pago combinado"),
    ]

    enrollment = models.ForeignKey("Enrollment", on_delete=models.CASCADE, related_name="installments")
    installment_number = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    due_date = models.DateField()

    amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    late_fee = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    remaining_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    paid_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_type = models.CharField(max_length=10, choices=PAYMENT_TYPE_CHOICES, null=True, blank=True)

    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="verified_installments",
    )
    verified_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["installment_number", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["enrollment", "installment_number"],
                name="unique_installment_enrollment_number",
            ),
        ]
        indexes = [
            models.Index(fields=["due_date"], name="installment_due_idx"),
        ]

    # ---------- montants ----------
    @property
    def total_due(self) -> Decimal:
        return (self.amount or ZERO) + (self.late_fee or ZERO)

    @property
    def pending_amount(self) -> Decimal:
        r = self.total_due - (self.paid_amount or ZERO)
        return r if r > ZERO else ZERO

    # ---------- dates ----------
    @property
    def grace_period_days(self) -> int:
        return int(self.enrollment.payment_plan.grace_period_days or 0)

    @property
    def grace_deadline(self):
        return self.due_date + timedelta(days=self.grace_period_days)

    def is_past_grace(self, today=None) -> bool:
        today = today or timezone.localdate()
        return today > self.grace_deadline

    def days_late(self, today=None) -> int:
        today = today or timezone.localdate()
        if not self.is_past_grace(today):
            return 0
        return (today - self.grace_deadline).days

    def is_overdue(self, today=None) -> bool:
        if self.status in (self.STATUS_PAID, self.STATUS_VERIFIED, self.STATUS_CANCELLED):
            return False
        return self.is_past_grace(today)

    @property
    def concept(self) -> str:
        from core.utils.words import installment_concept
        return installment_concept(self.installment_number)

    # ---------- ledger ----------
    def approved_vouchers(self):
        return self.vouchers.filter(status=InstallmentVoucher.STATUS_APPROVED)

    def approved_total(self) -> Decimal:
        total = ZERO
        for v in self.approved_vouchers():
            total += v.effective_amount
        return total

    def refresh_statut(self, today=None, reviewer=None, save=True):
        """
        Recalcule paid_amount / remaining / statut depuis les vouchers approuvés.
        ✅ paid_amount = somme des vouchers approuvés (jamais saisi à la main)
        ✅ le statut est dérivé, jamais forcé
        """
        today = today or timezone.localdate()

        approved = list(self.approved_vouchers().order_by("payment_date", "id"))
        paid = sum((v.effective_amount for v in approved), ZERO)
        has_pending = self.vouchers.filter(status=InstallmentVoucher.STATUS_PENDING).exists()

        self.paid_amount = paid
        due = self.total_due
        self.remaining_amount = max(due - paid, ZERO)
        self.paid_date = max((v.payment_date for v in approved if v.payment_date), default=None)

        if paid <= ZERO:
            self.payment_type = None
        elif len(approved) > 1:
            self.payment_type = "combined"
        elif paid >= due:
            self.payment_type = "full"
        else:
            self.payment_type = "partial"

        # anulée: statut figé
        if self.status != self.STATUS_CANCELLED:
            self._apply_status(paid, due, has_pending, today, reviewer)

        if save:
            self.save(update_fields=[
                "paid_amount", "remaining_amount", "paid_date", "payment_type",
                "status", "verified_at", "verified_by",
            ])

    def _apply_status(self, paid, due, has_pending, today, reviewer):
        # cuota à 0: jamais vérifiée sans paiement
        if due > ZERO and paid >= due:
            self.status = self.STATUS_VERIFIED
            if not self.verified_at:
                self.verified_at = timezone.now()
                self.verified_by = reviewer
            return

        self.verified_at = None
        self.verified_by = None
        if paid > ZERO or has_pending:
            self.status = self.STATUS_PAID
        else:
            self.status = self.STATUS_OVERDUE if self.is_past_grace(today) else self.STATUS_PENDING

    def __str__(self):
        return f"Cuota {self.installment_number} — {self.enrollment_id} ({self.get_status_display()})"


# =========================================
# Vouchers (justificatifs de paiement)
# =========================================
def voucher_upload_path(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower() or ".pdf"
    student_id = instance.installment.enrollment.student_id if instance.installment_id else "tmp"
    return f"vouchers/{student_id}/{uuid.uuid4().hex}{ext}"


class InstallmentVoucher(AuditBase):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pendiente"),
        (STATUS_APPROVED, "Aprobado"),
        (STATUS_REJECTED, "Rechazado"),
    ]

    METHOD_CHOICES = [
        ("cash", "Efectivo"),
        ("transfer", "Transferencia Bancaria"),
        ("deposit", "Depósito Bancario"),
        ("card", "Tarjeta de Crédito/Débito"),
        ("yape", "Yape"),
    ]

    PAYMENT_TYPE_CHOICES = [
        ("full", "Pago completo"),
        ("partial", "Pago parcial"),
    ]

    SOURCE_VOUCHER = "voucher"
    SOURCE_CASHIER = "cashier"
    SOURCE_DISTRIBUTED = "distributed"

    SOURCE_CHOICES = [
        (SOURCE_VOUCHER, "Voucher subido"),
        (SOURCE_CASHIER, "Registro en caja"),
        (SOURCE_DISTRIBUTED, "Pago distribuido"),
    ]

    installment = models.ForeignKey("Installment", on_delete=models.CASCADE, related_name="vouchers")
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="uploaded_vouchers",
    )

    voucher_file = models.FileField(
        upload_to=voucher_upload_path,
        blank=True,
        validators=[FileExtensionValidator(allowed_extensions=["pdf", "jpg", "jpeg", "png", "webp"])],
    )

    declared_amount = models.DecimalField(max_digits=10, decimal_places=2)
    verified_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payment_date = models.DateField(default=timezone.localdate)
    payment_method = models.CharField(max_length=10, choices=METHOD_CHOICES, default="transfer")
    transaction_reference = models.CharField(max_length=100, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_type = models.CharField(max_length=10, choices=PAYMENT_TYPE_CHOICES, default="full")
    applied_to_total = models.BooleanField(default=False)
    payment_source = models.CharField(max_length=12, choices=SOURCE_CHOICES, default=SOURCE_VOUCHER)

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="reviewed_vouchers",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=500, blank=True)
    notes = models.TextField(blank=True)

    # boleta (PDF généré après approbation)
    receipt_number = models.CharField(max_length=30, blank=True, db_index=True)
    receipt_path = models.CharField(max_length=255, blank=True)
    receipt_sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def clean(self):
        m = self.declared_amount or ZERO
        if m <= ZERO:
            raise ValidationError({"declared_amount": "El monto declarado debe ser mayor a 0."})
        if self.verified_amount is not None and self.verified_amount <= ZERO:
            raise ValidationError({"verified_amount": "El monto verificado debe ser mayor a 0."})
        if self.status == self.STATUS_REJECTED and not (self.rejection_reason or "").strip():
            raise ValidationError({"rejection_reason": "Debe indicar el motivo del rechazo."})

    @property
    def effective_amount(self) -> Decimal:
        if self.verified_amount is not None:
            return self.verified_amount
        return self.declared_amount or ZERO

    @property
    def student(self):
        return self.installment.enrollment.student

    def __str__(self):
        return f"Voucher #{self.pk} — cuota {self.installment_id} — {self.declared_amount} ({self.status})"


# =========================================
# Historique des changements de plan
# =========================================
class PlanChange(models.Model):
    student = models.ForeignKey("Student", on_delete=models.CASCADE, related_name="plan_changes")
    enrollment = models.ForeignKey(
        "Enrollment", on_delete=models.SET_NULL, null=True, blank=True, related_name="plan_changes"
    )
    old_plan = models.ForeignKey(
        "PaymentPlan", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    new_plan = models.ForeignKey(
        "PaymentPlan", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    change_date = models.DateTimeField(auto_now_add=True)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    reason = models.TextField(blank=True)

    old_installments_count = models.PositiveSmallIntegerField(default=0)
    new_installments_count = models.PositiveSmallIntegerField(default=0)
    old_total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)
    new_total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=ZERO)

    class Meta:
        ordering = ["-change_date", "-id"]

    def __str__(self):
        return f"{self.student} : {self.old_plan_id} -> {self.new_plan_id}"


# =========================================
# Paramètres (templates documents, e-mails)
# =========================================
class Setting(models.Model):
    TYPE_CHOICES = [
        ("text", "Texto"),
        ("template", "Plantilla"),
        ("email", "Correo"),
    ]

    key = models.CharField(max_length=100, unique=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="text")
    content = models.TextField(blank=True)
    description = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["type", "key"]

    @classmethod
    def get(cls, key: str, default=None):
        row = cls.objects.filter(key=key).only("content").first()
        if row is None or row.content == "":
            return default
        return row.content

    @classmethod
    def set(cls, key: str, content: str, type: str = "text", description: str = ""):
        defaults = {"content": content or "", "type": type}
        if description:
            defaults["description"] = description
        obj, _ = cls.objects.update_or_create(key=key, defaults=defaults)
        return obj

    @classmethod
    def by_type(cls, type: str):
        return cls.objects.filter(type=type)

    def __str__(self):
        return self.key


# =========================================
# Relances (cuotas en retard)
# =========================================
class InstallmentReminder(models.Model):
    CHANNEL_CHOICES = [("email", "Correo"), ("notice", "Aviso")]

    installment = models.ForeignKey("Installment", on_delete=models.CASCADE, related_name="reminders")
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES, default="notice")
    message = models.CharField(max_length=255, blank=True)
    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-sent_at"]

    def __str__(self):
        return f"{self.channel} — {self.installment} — {self.sent_at:%Y-%m-%d}"
