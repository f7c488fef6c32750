# core/forms.py
from decimal import Decimal

from django import forms
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import FileExtensionValidator

from .models import Installment, InstallmentVoucher, PaymentPlan

VOUCHER_EXTENSIONS = ["pdf", "jpg", "jpeg", "png", "webp"]


def _max_upload_bytes() -> int:
    return int(getattr(settings, "UNCED_VOUCHER_MAX_UPLOAD_MB", 5)) * 1024 * 1024


def _check_size(f):
    if f and f.size > _max_upload_bytes():
        raise ValidationError(
            f"El archivo no puede superar {getattr(settings, 'UNCED_VOUCHER_MAX_UPLOAD_MB', 5)} MB."
        )
    return f


# =========================
# Planes de pago
# =========================
class PaymentPlanForm(forms.ModelForm):
    # absents => valeur actuelle (ou défaut du modèle)
    OPTIONAL_FIELDS = (
        "total_amount", "discount_percentage", "duration_months",
        "late_fee_percentage", "grace_period_days",
    )

    class Meta:
        model = PaymentPlan
        fields = [
            "name", "academic_level", "installments_count", "monthly_amount", "total_amount",
            "discount_percentage", "duration_months", "late_fee_percentage", "grace_period_days",
            "is_active", "description",
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in self.OPTIONAL_FIELDS:
            self.fields[name].required = False

    def clean(self):
        cleaned = super().clean()
        for name in self.OPTIONAL_FIELDS:
            if cleaned.get(name) is None and name not in self.errors:
                cleaned[name] = getattr(self.instance, name)
        if "is_active" not in self.data:
            cleaned["is_active"] = self.instance.is_active

        count = cleaned.get("installments_count")
        monthly = cleaned.get("monthly_amount")
        total = cleaned.get("total_amount")

        # ✅ total vide => calculé depuis le mensuel
        if count and monthly is not None and not total:
            cleaned["total_amount"] = (monthly * Decimal(count)).quantize(Decimal("0.01"))
        return cleaned


# =========================
# Vouchers
# =========================
class VoucherUploadForm(forms.Form):
    voucher_file = forms.FileField(
        validators=[FileExtensionValidator(allowed_extensions=VOUCHER_EXTENSIONS)]
    )
    declared_amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    payment_date = forms.DateField()
    payment_method = forms.ChoiceField(choices=InstallmentVoucher.METHOD_CHOICES)
    transaction_reference = forms.CharField(max_length=100, required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea)

    def clean_voucher_file(self):
        return _check_size(self.cleaned_data.get("voucher_file"))


class VoucherReplaceForm(VoucherUploadForm):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # remplacement: tout est optionnel
        for name in self.fields:
            self.fields[name].required = False


class VoucherReviewForm(forms.Form):
    ACTION_CHOICES = [("approve", "Aprobar"), ("reject", "Rechazar")]

    action = forms.ChoiceField(choices=ACTION_CHOICES)
    rejection_reason = forms.CharField(max_length=500, required=False)
    verified_amount = forms.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.01"), required=False
    )
    notes = forms.CharField(required=False)

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("action") == "reject" and not (cleaned.get("rejection_reason") or "").strip():
            raise ValidationError({"rejection_reason": "Debe indicar el motivo del rechazo."})
        return cleaned


class RejectVoucherForm(forms.Form):
    rejection_reason = forms.CharField(max_length=500)


# =========================
# Caja
# =========================
class DistributedPaymentForm(forms.Form):
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    payment_date = forms.DateField(required=False)
    payment_method = forms.ChoiceField(choices=InstallmentVoucher.METHOD_CHOICES, initial="cash")
    reference = forms.CharField(max_length=100, required=False)
    notes = forms.CharField(required=False)


class InstallmentUpdateForm(forms.ModelForm):
    """
    Correction caja: montant / échéance / notes. Le statut reste dérivé.
    """
    class Meta:
        model = Installment
        fields = ["due_date", "amount", "notes"]

    def clean_amount(self):
        amount = self.cleaned_data.get("amount")
        if amount is None or amount < 0:
            raise ValidationError("El monto no puede ser negativo.")
        if self.instance.pk and amount < (self.instance.paid_amount or Decimal("0.00")):
            raise ValidationError("El monto no puede ser menor a lo ya pagado.")
        return amount


class ManualVerifyForm(forms.Form):
    verified = forms.BooleanField(required=False)


class DateRangeForm(forms.Form):
    from_date = forms.DateField(required=False)
    to_date = forms.DateField(required=False)

    def clean(self):
        cleaned = super().clean()
        d1, d2 = cleaned.get("from_date"), cleaned.get("to_date")
        if d1 and d2 and d1 > d2:
            raise ValidationError({"to_date": "La fecha final debe ser posterior a la inicial."})
        return cleaned


class PlanChangeForm(forms.Form):
    payment_plan = forms.ModelChoiceField(queryset=PaymentPlan.objects.filter(is_active=True))
    reason = forms.CharField(required=False)
