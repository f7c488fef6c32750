# accounts/middleware.py
from .threadlocal import clear_current_user, set_current_user


class CurrentUserMiddleware:
    """
    Stocke le user connecté dans un threadlocal pour l'audit des modèles
    (created_by / updated_by).
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        set_current_user(getattr(request, "user", None))
        try:
            return self.get_response(request)
        finally:
            clear_current_user()
