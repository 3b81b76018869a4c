"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Stripe subscription reconciliation - daily at 09:15 UTC
    'reconcile-subscriptions': {
        'task': 'tasks.reconcile_subscriptions',
        'schedule': crontab(hour=9, minute=15),
    },
    # Food entry archive + size-budget trim - hourly
    'run-data-retention': {
        'task': 'tasks.run_data_retention',
        'schedule': crontab(minute=5),
    },
}
