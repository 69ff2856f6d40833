"""
Celery configuration for the scholarship aid service.

Celery runs the aid background work:
- Provider webhook processing and retries
- Receipt generation for disbursements
- Periodic sweeps (expired payment links, lapsed sub-ledgers)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps. Periodic schedules
live in the database (django-celery-beat) and are created by migrations.

Usage:
    # Queue a webhook event for processing
    from aid.tasks import process_webhook_event
    process_webhook_event.delay(str(event.id))

    # Run the beat scheduler
    celery -A config beat --scheduler django_celery_beat.schedulers:DatabaseScheduler

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
# The name should match the Django project name
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
