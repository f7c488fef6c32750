from django.core.management.base import BaseCommand

from core.models import Enrollment
from core.services.schedule import misdated_installments, sync_installments_with_plan


class Command(BaseCommand):
    help = "Réaligne les échéances des cuotas non payées sur la date de base de l'étudiant."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true")

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        fixed = 0

        qs = (
            Enrollment.objects
            .select_related("student", "payment_plan")
            .exclude(status=Enrollment.STATUS_CANCELLED)
            .order_by("id")
        )
        for enrollment in qs:
            wrong = misdated_installments(enrollment)
            if not wrong:
                continue

            for inst, expected in wrong:
                self.stdout.write(
                    f"- {enrollment.enrollment_code} cuota {inst.installment_number}: "
                    f"{inst.due_date:%Y-%m-%d} -> {expected:%Y-%m-%d}"
                )
            fixed += len(wrong)
            if not dry_run:
                sync_installments_with_plan(enrollment.pk, sync_dates=True)

        label = "à corriger (dry-run)" if dry_run else "corrigées"
        self.stdout.write(self.style.SUCCESS(f"OK — {fixed} échéances {label}."))
