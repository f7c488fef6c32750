# core/admin.py
from django.contrib import admin, messages

from .models import (
    AcademicLevel,
    Enrollment,
    Installment,
    InstallmentReminder,
    InstallmentVoucher,
    PaymentPlan,
    PlanChange,
    Setting,
    Student,
)
from .services.late_fees import recalculate_late_fees
from .services.reconciliation import reconcile_installments
from .services.schedule import sync_installments_with_plan


# =========================
# Structure / plans
# =========================
@admin.register(AcademicLevel)
class AcademicLevelAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "order", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "code")


@admin.register(PaymentPlan)
class PaymentPlanAdmin(admin.ModelAdmin):
    list_display = (
        "name", "academic_level", "installments_count", "monthly_amount", "total_amount",
        "late_fee_percentage", "grace_period_days", "is_active",
    )
    list_filter = ("is_active", "academic_level")
    search_fields = ("name",)

    def delete_model(self, request, obj):
        if obj.has_enrollments:
            messages.error(request, "No se puede eliminar un plan con matrículas asociadas.")
            return
        super().delete_model(request, obj)


# =========================
# Étudiants / matrículas
# =========================
@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("full_name", "document_number", "email", "prospect_status", "enrollment_verified")
    list_filter = ("prospect_status", "enrollment_verified", "academic_level")
    search_fields = ("first_name", "paternal_last_name", "maternal_last_name", "document_number", "email")


@admin.action(description="✅ Recalcular moras")
def action_recalculer_moras(modeladmin, request, queryset):
    total = 0
    for enrollment in queryset:
        total += recalculate_late_fees(enrollment)
    modeladmin.message_user(request, f"{total} cuota(s) actualizada(s).")


@admin.action(description="Sincronizar cuotas con el plan")
def action_sync_plan(modeladmin, request, queryset):
    for enrollment in queryset:
        sync_installments_with_plan(enrollment.pk)
    modeladmin.message_user(request, f"{queryset.count()} matrícula(s) sincronizada(s).")


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("enrollment_code", "student", "payment_plan", "enrollment_date", "status", "enrollment_fee_verified")
    list_filter = ("status", "enrollment_fee_verified", "payment_plan")
    search_fields = ("enrollment_code", "student__first_name", "student__paternal_last_name", "student__document_number")
    actions = [action_recalculer_moras, action_sync_plan]


# =========================
# Cuotas / vouchers
# =========================
class InstallmentVoucherInline(admin.TabularInline):
    model = InstallmentVoucher
    extra = 0
    fields = ("declared_amount", "verified_amount", "payment_date", "payment_method", "status", "payment_source")
    readonly_fields = fields
    can_delete = False


@admin.action(description="Reconciliar con los vouchers aprobados")
def action_reconcilier(modeladmin, request, queryset):
    drifts = reconcile_installments(queryset)
    modeladmin.message_user(request, f"{len(drifts)} cuota(s) corregida(s).")


@admin.register(Installment)
class InstallmentAdmin(admin.ModelAdmin):
    list_display = (
        "enrollment", "installment_number", "due_date", "amount", "late_fee",
        "paid_amount", "remaining_amount", "status",
    )
    list_filter = ("status", "due_date")
    search_fields = ("enrollment__enrollment_code", "enrollment__student__paternal_last_name")
    # paid_amount / statut dérivés des vouchers
    readonly_fields = ("paid_amount", "remaining_amount", "paid_date", "payment_type", "verified_by", "verified_at")
    inlines = [InstallmentVoucherInline]
    actions = [action_reconcilier]


@admin.register(InstallmentVoucher)
class InstallmentVoucherAdmin(admin.ModelAdmin):
    list_display = (
        "id", "installment", "declared_amount", "verified_amount", "payment_date",
        "payment_method", "status", "payment_source", "receipt_number",
    )
    list_filter = ("status", "payment_method", "payment_source")
    search_fields = ("transaction_reference", "receipt_number", "installment__enrollment__enrollment_code")
    readonly_fields = ("status", "reviewed_by", "reviewed_at", "receipt_number", "receipt_path", "receipt_sent_at")


@admin.register(PlanChange)
class PlanChangeAdmin(admin.ModelAdmin):
    list_display = ("student", "old_plan", "new_plan", "change_date", "changed_by")
    readonly_fields = [f.name for f in PlanChange._meta.fields]


@admin.register(InstallmentReminder)
class InstallmentReminderAdmin(admin.ModelAdmin):
    list_display = ("installment", "channel", "sent_at")
    list_filter = ("channel",)


# =========================
# Paramètres (plantillas)
# =========================
@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ("key", "type", "description", "updated_at")
    list_filter = ("type",)
    search_fields = ("key", "description")
