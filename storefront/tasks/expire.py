# storefront/tasks/expire.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.services.order_service import OrderService
from storefront.utils.settings import ORDER_PAYMENT_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="storefront.tasks.expire.expire_unpaid_orders_task")
def expire_unpaid_orders_task():
    logger.info("Expire unpaid orders task started")

    db = SessionLocal()
    try:
        expired = OrderService(db).expire_unpaid_orders(ORDER_PAYMENT_TTL_SECONDS)
    finally:
        db.close()

    return {"expired": expired}
