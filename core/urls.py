# core/urls.py
from django.urls import path

from . import views_cashier as cashier
from . import views_installments as inst
from . import views_plans as plans
from . import views_student as student
from . import views_vouchers as vouchers

app_name = "core"

urlpatterns = [

    # PLANES DE PAGO
    path("payment-plans/", plans.plan_list, name="plan_list"),
    path("payment-plans/create/", plans.plan_create, name="plan_create"),
    path("payment-plans/<int:plan_id>/update/", plans.plan_update, name="plan_update"),
    path("payment-plans/<int:plan_id>/delete/", plans.plan_delete, name="plan_delete"),
    path("enrollments/<int:enrollment_id>/change-plan/", plans.enrollment_change_plan, name="enrollment_change_plan"),

    # CUOTAS
    path("enrollments/<int:enrollment_id>/installments/", inst.enrollment_installments, name="enrollment_installments"),
    path(
        "enrollments/<int:enrollment_id>/installments/recalculate/",
        inst.enrollment_recalculate,
        name="enrollment_recalculate",
    ),
    path("installments/overdue/", inst.overdue_list, name="overdue_list"),
    path("installments/overdue/export/", inst.overdue_export, name="overdue_export"),
    path("installments/<int:installment_id>/", inst.installment_detail, name="installment_detail"),
    path("installments/<int:installment_id>/update/", inst.installment_update, name="installment_update"),
    path("installments/<int:installment_id>/verify/", inst.installment_verify, name="installment_verify"),

    # VOUCHERS
    path("installments/<int:installment_id>/vouchers/upload/", vouchers.voucher_upload, name="voucher_upload"),
    path("vouchers/pending/", vouchers.voucher_pending_list, name="voucher_pending_list"),
    path("vouchers/<int:voucher_id>/file/", vouchers.voucher_file, name="voucher_file"),
    path("vouchers/<int:voucher_id>/approve/", vouchers.voucher_approve, name="voucher_approve"),
    path("vouchers/<int:voucher_id>/reject/", vouchers.voucher_reject, name="voucher_reject"),

    # CAJA
    path("cashier/students/<int:student_id>/enrollment/", cashier.student_enrollment_detail, name="cashier_student_enrollment"),
    path("cashier/vouchers/<int:voucher_id>/verify/", cashier.cashier_verify_voucher, name="cashier_verify_voucher"),
    path(
        "cashier/enrollments/<int:enrollment_id>/distributed-payment/",
        cashier.cashier_distributed_payment,
        name="cashier_distributed_payment",
    ),
    path("cashier/vouchers/<int:voucher_id>/receipt/", cashier.cashier_receipt_download, name="cashier_receipt_download"),
    path("cashier/reports/payments/", cashier.cashier_payments_export, name="cashier_payments_export"),

    # ESTUDIANTE
    path("student/enrollment/", student.my_enrollment, name="student_enrollment"),
    path("student/schedule/", student.my_payment_schedule, name="student_schedule"),
    path(
        "student/installments/<int:installment_id>/vouchers/upload/",
        vouchers.student_voucher_upload,
        name="student_voucher_upload",
    ),
    path("student/vouchers/<int:voucher_id>/replace/", vouchers.student_voucher_replace, name="student_voucher_replace"),
]
