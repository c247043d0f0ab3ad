"""
Celery configuration for the rental settlement service.

Celery runs the background half of the payment core:
- Webhook event processing (dispatched by the webhook endpoint)
- Scheduled payouts, bond hold expiry and payment reconciliation
  (django-celery-beat DatabaseScheduler, rows installed by migrations)
- Retries of failed webhook events and interrupted payout transfers

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# The name should match the Django project name
app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery looks for a tasks.py module in each installed app
app.autodiscover_tasks()
