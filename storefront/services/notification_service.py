# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Fire-and-forget notifications through Celery.
    Called after the transaction committed, so a broker outage is logged and
    never turns a finished order into an error response.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, event: str):
        try:
            send_order_notification_task.delay(user_id, order_id, event)
        except Exception as e:
            logger.warning(f"Could not queue {event} notification for order {order_id}: {e}")

    @staticmethod
    def escalate_to_human(user_id: int, reason: str):
        try:
            escalate_to_human_task.delay(user_id, reason)
        except Exception as e:
            logger.warning(f"Could not queue escalation for user {user_id}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, event: str):
    """
    In a real deployment this would e-mail / push the customer.
    For now it only logs.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_id} {event}")
    return {"user_id": user_id, "order_id": order_id, "event": event, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.escalate_to_human_task")
def escalate_to_human_task(user_id: int, reason: str):
    """Hands the conversation over to support staff (ticketing hook)."""
    logger.info(f"[ESCALATION] User {user_id}: {reason}")
    return {"user_id": user_id, "reason": reason, "status": "queued"}
