import logging

from django.conf import settings
from django.core.mail import send_mail
from django.core.management.base import BaseCommand
from django.utils import timezone

from core.models import InstallmentReminder
from core.services.late_fees import overdue_installments
from core.utils.words import installment_concept, money

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Recalcule les moras et crée des relances pour les cuotas vencidas."

    def add_arguments(self, parser):
        parser.add_argument("--email", action="store_true", help="Envoyer aussi la relance par e-mail")

    def handle(self, *args, **options):
        today = timezone.localdate()
        created = emailed = 0

        for inst in overdue_installments(today=today):
            # ✅ éviter spam : 1 relance par jour max
            if inst.reminders.filter(sent_at__date=today).exists():
                continue

            student = inst.enrollment.student
            message = (
                f"{installment_concept(inst.installment_number)} vencida: "
                f"saldo {money(inst.pending_amount)} (mora {money(inst.late_fee)})"
            )
            channel = "notice"

            if options["email"] and student.email:
                try:
                    send_mail(
                        subject=f"Recordatorio de pago - {inst.enrollment.enrollment_code}",
                        message=f"Hola {student.full_name},\n\n{message}.\n\n{settings.UNCED_SCHOOL_NAME}",
                        from_email=settings.DEFAULT_FROM_EMAIL,
                        recipient_list=[student.email],
                    )
                    channel = "email"
                    emailed += 1
                except Exception:
                    logger.error("Recordatorio no enviado: cuota=%s", inst.pk, exc_info=True)

            InstallmentReminder.objects.create(installment=inst, channel=channel, message=message[:255])
            created += 1

        self.stdout.write(self.style.SUCCESS(f"Relances créées: {created} (e-mails: {emailed})"))
