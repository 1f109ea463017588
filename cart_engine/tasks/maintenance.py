# cart_engine/tasks/maintenance.py
from cart_engine.celery_worker import celery_app
from cart_engine.data.database import SessionLocal
from cart_engine.services.abandonment_service import AbandonmentService
from cart_engine.services.notification_service import NotificationService
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="cart_engine.tasks.maintenance.mark_abandoned_carts_task")
def mark_abandoned_carts_task():
    logger.info("Mark abandoned carts task started")

    db = SessionLocal()
    try:
        return AbandonmentService(db).mark_abandoned_carts()
    finally:
        db.close()


@celery_app.task(name="cart_engine.tasks.maintenance.dispatch_recovery_notifications_task")
def dispatch_recovery_notifications_task():
    logger.info("Recovery notifications task started")

    db = SessionLocal()
    try:
        service = AbandonmentService(db)
        carts = service.get_abandoned_carts_for_recovery()

        logger.info(f"Found {len(carts)} carts to recover")

        sent = 0
        for cart in carts:
            try:
                NotificationService.send_recovery_notification(cart.id, cart.email)
            except Exception as e:
                #broker niedostepny - sprobujemy przy nastepnym uruchomieniu
                logger.warning(f"Failed to queue recovery notification for cart {cart.id}: {e}")
                continue
            service.mark_recovery_email_sent(cart.id)
            sent += 1
        return sent
    finally:
        db.close()


@celery_app.task(name="cart_engine.tasks.maintenance.cleanup_expired_carts_task")
def cleanup_expired_carts_task():
    logger.info("Cleanup expired carts task started")

    db = SessionLocal()
    try:
        return AbandonmentService(db).cleanup_expired_carts()
    finally:
        db.close()
