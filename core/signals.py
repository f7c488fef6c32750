from __future__ import annotations

import logging

from django.apps import apps
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


# =========================================================
# 1) Matrícula -> créer les cuotas du plan
# =========================================================
@receiver(post_save, sender="core.Enrollment")
def creer_cuotas_matricula(sender, instance, created: bool, **kwargs):
    if not created or kwargs.get("raw"):
        return

    from core.services.schedule import generate_installments

    # ✅ idempotent (get_or_create sur installment_number)
    generate_installments(instance)


# =========================================================
# 2) Plan modifié -> resync des cuotas NON payées
# =========================================================
@receiver(post_save, sender="core.PaymentPlan")
def sync_cuotas_quand_plan_change(sender, instance, created: bool, **kwargs):
    """
    ✅ Quand un PaymentPlan change:
    - Maj des cuotas sans argent (montant + échéance)
    - Ne touche JAMAIS aux cuotas payées / partielles
    """
    if created or kwargs.get("raw"):
        return

    Enrollment = apps.get_model("core", "Enrollment")

    def _apply():
        from core.services.schedule import sync_installments_with_plan

        ids = list(
            Enrollment.objects
            .filter(payment_plan_id=instance.pk)
            .exclude(status=Enrollment.STATUS_CANCELLED)
            .values_list("id", flat=True)
        )
        for enrollment_id in ids:
            sync_installments_with_plan(enrollment_id)
        if ids:
            logger.info("Plan %s modificado: %s matrículas sincronizadas", instance.pk, len(ids))

    transaction.on_commit(_apply)
