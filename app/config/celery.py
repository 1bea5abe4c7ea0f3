"""
Celery configuration for the billing backend.

Celery runs the work that must not block a web request:
- The credit expiration sweep (every 15 minutes via django-celery-beat)
- Re-dispatch of webhook events that failed or got stuck mid-processing

Redis is both the message broker and result backend. Tasks are auto-discovered
from the tasks.py module of every installed app.

Usage:
    from billing.tasks import expire_credits

    expire_credits.delay()
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
