# core/services/exceptions.py
from django.core.exceptions import ValidationError


class PaymentError(ValidationError):
    """
    Erreur métier (cuotas / vouchers) avec le code HTTP à renvoyer par la vue.
    - 422 par défaut (donnée invalide)
    - 400 voucher déjà traité
    - 403 accès refusé (étudiant non matriculado, voucher d'un autre)
    """
    status_code = 422

    def __init__(self, message, status_code=None, field=None):
        if field:
            super().__init__({field: [message]})
        else:
            super().__init__(message)
        self.user_message = message
        if status_code is not None:
            self.status_code = status_code


class AlreadyReviewed(PaymentError):
    status_code = 400


class NotAllowed(PaymentError):
    status_code = 403
