# storefront/main.py
from fastapi import FastAPI
from storefront.data.database import Base, engine
from storefront.api.routers import health, users, products, carts, wishlist, orders, payments, chat
from storefront.utils.logging import get_logger
import uvicorn

# every model registered in Base.metadata before create_all
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)

API_PREFIX = "/api/v1"


def init_db():
    logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(users.router, prefix=API_PREFIX)
    app.include_router(products.router, prefix=API_PREFIX)
    app.include_router(carts.router, prefix=API_PREFIX)
    app.include_router(wishlist.router, prefix=API_PREFIX)
    app.include_router(orders.router, prefix=API_PREFIX)
    app.include_router(payments.router, prefix=API_PREFIX)
    app.include_router(chat.router, prefix=API_PREFIX)

    return app


init_db()
app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
