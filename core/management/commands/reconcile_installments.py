from django.core.management.base import BaseCommand, CommandError

from core.models import Enrollment, Installment
from core.services.reconciliation import reconcile_installments


class Command(BaseCommand):
    help = "Répare paid_amount / statut / mora des cuotas à partir des vouchers approuvés."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Afficher les écarts sans corriger")
        parser.add_argument("--enrollment", type=int, help="ID de matrícula")

    def handle(self, *args, **options):
        qs = Installment.objects.all()
        if options["enrollment"]:
            if not Enrollment.objects.filter(pk=options["enrollment"]).exists():
                raise CommandError(f"Matrícula {options['enrollment']} introuvable.")
            qs = qs.filter(enrollment_id=options["enrollment"])

        dry_run = options["dry_run"]
        drifts = reconcile_installments(qs, dry_run=dry_run)

        for d in drifts:
            b, a = d["before"], d["after"]
            self.stdout.write(
                f"- matrícula {d['enrollment_id']} cuota {d['installment_number']}: "
                f"pagado {b['paid_amount']} -> {a['paid_amount']}, "
                f"mora {b['late_fee']} -> {a['late_fee']}, "
                f"estado {b['status']} -> {a['status']}"
            )

        label = "détectés (dry-run)" if dry_run else "corrigés"
        self.stdout.write(self.style.SUCCESS(f"OK — {len(drifts)} écarts {label}."))
