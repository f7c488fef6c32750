# accounts/permissions.py
from functools import wraps

from django.contrib.auth.views import redirect_to_login
from django.http import JsonResponse


def _wants_json(request) -> bool:
    accept = request.headers.get("Accept", "")
    return (
        "application/json" in accept
        or request.headers.get("X-Requested-With") == "XMLHttpRequest"
        or request.path.startswith("/api/")
    )


def group_required(*group_names):
    """
    Autorise si:
    - user pas connecté => redirect login (?next=...) ou 401 JSON pour l'API
    - superuser => OK
    - user dans AU MOINS un des groupes => OK
    Sinon => 403 JSON

    Supporte:
        @group_required("ADMIN", "CASHIER")
        @group_required(["ADMIN", "CASHIER"])
    """

    # normaliser: group_required(["A","B"])
    if len(group_names) == 1 and isinstance(group_names[0], (list, tuple, set)):
        group_names = tuple(group_names[0])

    group_names = tuple(g for g in group_names if g)

    def decorator(view_func):
        @wraps(view_func)
        def _wrapped(request, *args, **kwargs):
            u = request.user

            if not u.is_authenticated:
                if _wants_json(request):
                    return JsonResponse({"message": "No autenticado."}, status=401)
                return redirect_to_login(request.get_full_path())

            if u.is_superuser:
                return view_func(request, *args, **kwargs)

            if u.groups.filter(name__in=group_names).exists():
                return view_func(request, *args, **kwargs)

            return JsonResponse({"message": "No tienes permiso para realizar esta acción."}, status=403)

        return _wrapped

    return decorator
