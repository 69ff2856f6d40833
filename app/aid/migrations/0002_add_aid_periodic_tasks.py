"""
Add celery-beat schedules for the aid background sweeps.

This migration creates the periodic tasks for:
- expire_stale_transactions: every 5 minutes, cancels pending payment
  transactions whose hosted payment link has expired
- retry_failed_webhooks: every 15 minutes, re-queues failed webhook events
- expire_partner_school_budgets: daily, expires lapsed sub-ledgers
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Expire Stale Payment Transactions",
        "task": "aid.workers.expiry_worker.expire_stale_transactions",
        "every": 5,
        "period": "minutes",
        "description": (
            "Scans for pending payment transactions with an expired payment "
            "link, cancels them and reverts their applications to approved."
        ),
    },
    {
        "name": "Retry Failed Aid Webhooks",
        "task": "aid.tasks.retry_failed_webhooks",
        "every": 15,
        "period": "minutes",
        "description": "Re-queues failed provider webhook events below the retry limit.",
    },
    {
        "name": "Expire Partner School Budgets",
        "task": "aid.workers.expiry_worker.expire_partner_school_budgets",
        "every": 1,
        "period": "days",
        "description": "Marks active partner school budgets past their expiry date as expired.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the aid sweeps."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period=entry["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("aid", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
