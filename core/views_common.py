# core/views_common.py
import json
from decimal import Decimal
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import Http404, HttpResponse, JsonResponse

from core.services.exceptions import NotAllowed, PaymentError

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def money_str(x) -> str:
    return f"{(x or Decimal('0.00')):.2f}"


def request_data(request):
    """
    POST classique (multipart / form) ou corps JSON.
    """
    if "application/json" in (request.content_type or ""):
        try:
            data = json.loads(request.body or b"{}")
        except ValueError:
            raise PaymentError("JSON inválido.", status_code=400)
        if not isinstance(data, dict):
            raise PaymentError("JSON inválido.", status_code=400)
        return data
    return request.POST


def json_error(message: str, status: int = 422, errors=None) -> JsonResponse:
    payload = {"message": message}
    if errors:
        payload["errors"] = errors
    return JsonResponse(payload, status=status)


def form_errors(form) -> JsonResponse:
    errors = {field: [str(e) for e in errs] for field, errs in form.errors.items()}
    return json_error("Los datos proporcionados no son válidos.", status=422, errors=errors)


def _validation_payload(exc: ValidationError) -> dict:
    if hasattr(exc, "error_dict"):
        return {field: [str(m) for m in msgs] for field, msgs in exc.message_dict.items()}
    return {}


def api_view(view_func):
    """
    Traduit les erreurs métier en JSON:
    PaymentError -> son status_code ; ValidationError -> 422 ; Http404 -> 404.
    """
    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except PaymentError as exc:
            return json_error(exc.user_message, status=exc.status_code, errors=_validation_payload(exc))
        except ValidationError as exc:
            errors = _validation_payload(exc)
            message = "Los datos proporcionados no son válidos." if errors else " ".join(exc.messages)
            return json_error(message, status=422, errors=errors)
        except Http404:
            return json_error("Recurso no encontrado.", status=404)

    return _wrapped


def xlsx_response(wb, filename: str) -> HttpResponse:
    response = HttpResponse(content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    wb.save(response)
    return response


def own_student(request):
    """
    Étudiant lié à l'utilisateur connecté (403 sinon).
    """
    student = getattr(request.user, "student", None)
    if student is None:
        raise NotAllowed("Tu usuario no está asociado a un estudiante.")
    return student
