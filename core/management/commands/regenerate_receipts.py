from django.core.files.storage import default_storage
from django.core.management.base import BaseCommand

from core.models import InstallmentVoucher
from core.pdf.receipt import generate_payment_receipt


class Command(BaseCommand):
    help = "Régénère les boletas PDF des vouchers approuvés."

    def add_arguments(self, parser):
        parser.add_argument(
            "--missing-only",
            action="store_true",
            help="Seulement les vouchers sans boleta (ou fichier absent)",
        )

    def handle(self, *args, **options):
        qs = (
            InstallmentVoucher.objects
            .select_related(
                "installment__enrollment__student",
                "installment__enrollment__payment_plan__academic_level",
                "reviewed_by",
            )
            .filter(status=InstallmentVoucher.STATUS_APPROVED)
            .order_by("id")
        )

        done = failed = skipped = 0
        for voucher in qs:
            if options["missing_only"] and voucher.receipt_path and default_storage.exists(voucher.receipt_path):
                skipped += 1
                continue
            if generate_payment_receipt(voucher):
                done += 1
            else:
                failed += 1

        self.stdout.write(self.style.SUCCESS(f"Boletas générées: {done} (ignorées: {skipped})"))
        if failed:
            self.stdout.write(self.style.WARNING(f"Échecs: {failed} (voir les logs)"))
