"""
Add Celery Beat schedules for billing maintenance tasks.

This migration creates periodic task schedules for:
- The credit expiration sweep
- Webhook recovery (retry failed, reset stuck)
"""

from django.db import migrations

TASK_NAMES = [
    "Billing: Expire Credits",
    "Billing: Retry Failed Webhooks",
    "Billing: Cleanup Stuck Webhooks",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for billing maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule_5min, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )
    schedule_15min, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Expire Credits",
        defaults={
            "task": "billing.tasks.expire_credits",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Zeroes credit entries past their expiry and writes the "
                "matching expired transactions."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Retry Failed Webhooks",
        defaults={
            "task": "billing.tasks.retry_failed_webhooks",
            "interval": schedule_5min,
            "enabled": True,
            "description": (
                "Re-queues failed Stripe webhook events that have attempts left."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Billing: Cleanup Stuck Webhooks",
        defaults={
            "task": "billing.tasks.cleanup_stuck_webhooks",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Marks webhook events stuck in processing as failed so they "
                "are retried."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove billing periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0002_seed_catalog"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
