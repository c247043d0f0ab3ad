"""
Add Celery Beat schedules for settlement tasks.

This migration creates periodic task schedules for:
- Webhook recovery (failed and never-queued events)
- Owner payouts (daily, weekly and monthly schedules)
- Payout transfer retries
- Bond hold expiry
- Stale payment reconciliation
"""

import json

from django.db import migrations


TASK_NAMES = [
    "Payments: Retry Failed Webhooks",
    "Payments: Daily Owner Payouts",
    "Payments: Weekly Owner Payouts",
    "Payments: Monthly Owner Payouts",
    "Payments: Retry Pending Payouts",
    "Payments: Expire Bond Holds",
    "Payments: Reconcile Stale Payments",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for settlement."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # =========================================================================
    # Interval Schedules
    # =========================================================================

    schedule_5min, _ = IntervalSchedule.objects.get_or_create(every=5, period="minutes")
    schedule_15min, _ = IntervalSchedule.objects.get_or_create(every=15, period="minutes")
    schedule_1hour, _ = IntervalSchedule.objects.get_or_create(every=1, period="hours")

    # =========================================================================
    # Crontab Schedules
    # =========================================================================

    # Daily at 1 AM UTC
    crontab_daily, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="1",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    # Weekly on Monday at 1 AM UTC
    crontab_weekly, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="1",
        day_of_week="1",
        day_of_month="*",
        month_of_year="*",
    )

    # First of the month at 1 AM UTC
    crontab_monthly, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="1",
        day_of_week="*",
        day_of_month="1",
        month_of_year="*",
    )

    # =========================================================================
    # Periodic Tasks - Webhooks
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Payments: Retry Failed Webhooks",
        defaults={
            "task": "payments.tasks.retry_failed_webhooks",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Reprocesses FAILED webhook events below the attempt limit and "
                "PENDING events whose processing task was never queued."
            ),
        },
    )

    # =========================================================================
    # Periodic Tasks - Payouts
    # =========================================================================

    for name, crontab, schedule in (
        ("Payments: Daily Owner Payouts", crontab_daily, "daily"),
        ("Payments: Weekly Owner Payouts", crontab_weekly, "weekly"),
        ("Payments: Monthly Owner Payouts", crontab_monthly, "monthly"),
    ):
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": "payments.tasks.process_scheduled_payouts",
                "crontab": crontab,
                "kwargs": json.dumps({"schedule": schedule}),
                "enabled": True,
                "description": f"Creates payouts for owners on the {schedule} schedule.",
            },
        )

    PeriodicTask.objects.get_or_create(
        name="Payments: Retry Pending Payouts",
        defaults={
            "task": "payments.tasks.retry_pending_payouts",
            "interval": schedule_5min,
            "enabled": True,
            "description": (
                "Re-runs transfers for payouts left PENDING by transient "
                "processor errors. Idempotency keys prevent double transfers."
            ),
        },
    )

    # =========================================================================
    # Periodic Tasks - Bonds & Reconciliation
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name="Payments: Expire Bond Holds",
        defaults={
            "task": "payments.tasks.expire_bond_holds",
            "interval": schedule_1hour,
            "enabled": True,
            "description": "Marks bond authorizations past their expiry as EXPIRED.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Payments: Reconcile Stale Payments",
        defaults={
            "task": "payments.tasks.reconcile_stale_payments",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Checks PENDING and PROCESSING payments older than 30 minutes "
                "against the processor and applies missed status changes."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
