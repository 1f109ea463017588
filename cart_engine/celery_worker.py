# cart_engine/celery_worker.py
from celery import Celery

from cart_engine.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "cart_engine",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#taski musza byc zaimportowane zeby Celery je zarejestrowal
celery_app.conf.imports = (
    "cart_engine.tasks.maintenance",
    "cart_engine.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "mark-abandoned-carts-every-5-minutes": {
        "task": "cart_engine.tasks.maintenance.mark_abandoned_carts_task",
        "schedule": 300.0,
    },
    "dispatch-recovery-notifications-every-15-minutes": {
        "task": "cart_engine.tasks.maintenance.dispatch_recovery_notifications_task",
        "schedule": 900.0,
    },
    "cleanup-expired-carts-daily": {
        "task": "cart_engine.tasks.maintenance.cleanup_expired_carts_task",
        "schedule": 86400.0,
    },
}

celery_app.conf.timezone = "UTC"
