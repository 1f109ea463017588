# cart_engine/services/notification_service.py
from cart_engine.celery_worker import celery_app
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia o porzuconym koszyku.
    Uzywa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_recovery_notification(cart_id: str, email: str):
        send_recovery_notification_task.delay(cart_id, email)


@celery_app.task(name="cart_engine.services.notification_service.send_recovery_notification_task")
def send_recovery_notification_task(cart_id: str, email: str):
    """
    Celery task - tresc maila renderuje warstwa e-mail, tutaj tylko logujemy.
    """
    logger.info(f"[RECOVERY] Cart {cart_id}: recovery notification queued for {email}")

    return {"cart_id": cart_id, "email": email, "status": "sent"}
