# core/views_student.py
import os

from django.core.files.storage import default_storage
from django.http import FileResponse, JsonResponse
from django.views.decorators.http import require_GET

from accounts.permissions import group_required
from core.pdf.schedule import generate_payment_schedule
from core.services.enrollment import enrollment_summary
from core.utils_roles import ROLE_STUDENT
from core.views_common import api_view, json_error, own_student


@require_GET
@group_required(ROLE_STUDENT)
@api_view
def my_enrollment(request):
    student = own_student(request)
    enrollment = student.current_enrollment()
    if enrollment is None:
        return json_error("No tienes una matrícula registrada.", status=404)
    return JsonResponse(enrollment_summary(enrollment))


@require_GET
@group_required(ROLE_STUDENT)
@api_view
def my_payment_schedule(request):
    student = own_student(request)
    path = generate_payment_schedule(student)
    if not path:
        return json_error("No tienes una matrícula activa para generar el cronograma.", status=404)

    return FileResponse(
        default_storage.open(path, "rb"),
        content_type="application/pdf",
        filename=os.path.basename(path),
    )
