"""
Celery configuration for the Django project (receipt e-mails).
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("unced")

# Les clés CELERY_* de settings.py configurent le worker.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Charge core/tasks.py (et les tasks des autres apps).
app.autodiscover_tasks()
