# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicit imports, otherwise the worker never registers the tasks
celery_app.conf.imports = (
    "storefront.tasks.expire",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-unpaid-orders-every-minute": {
        "task": "storefront.tasks.expire.expire_unpaid_orders_task",
        "schedule": 60.0,
    },
}

celery_app.conf.timezone = "UTC"
