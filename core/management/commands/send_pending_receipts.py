from django.core.management.base import BaseCommand

from core.services.mailing import send_pending_receipts


class Command(BaseCommand):
    help = "Remet en file l'envoi des boletas approuvées pas encore envoyées."

    def add_arguments(self, parser):
        parser.add_argument("--days", type=int, default=None, help="Seulement les N derniers jours")

    def handle(self, *args, **options):
        count = send_pending_receipts(days=options["days"])
        self.stdout.write(self.style.SUCCESS(f"Boletas en file: {count}"))
