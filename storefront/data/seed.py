# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import SessionLocal
from storefront.data.models import ProductModel, UserModel
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PRODUCTS = [
    {"sku": "KB-001", "title": "Mechanical Keyboard", "category": "electronics",
     "description": "Hot-swappable 75% keyboard", "price": Decimal("199.99"),
     "discount_percentage": Decimal("10"), "stock": 25},
    {"sku": "MS-001", "title": "Wireless Mouse", "category": "electronics",
     "description": "Ergonomic wireless mouse", "price": Decimal("49.50"),
     "discount_percentage": Decimal("0"), "stock": 60},
    {"sku": "MN-001", "title": "27in Monitor", "category": "electronics",
     "description": "1440p IPS monitor", "price": Decimal("899.00"),
     "discount_percentage": Decimal("5"), "stock": 8},
    {"sku": "RS-001", "title": "Running Shoes", "category": "sports",
     "description": "Lightweight road running shoes", "price": Decimal("120.00"),
     "discount_percentage": Decimal("15"), "stock": 40},
]


def seed():
    db = SessionLocal()
    try:
        # only seed an empty catalog
        if db.query(ProductModel).first():
            return
        db.add(UserModel(email="admin@shop.local", name="Admin", role="ADMIN"))
        db.add(UserModel(email="customer@shop.local", name="Customer", role="USER"))
        db.add_all(ProductModel(**p) for p in PRODUCTS)
        db.commit()
        logger.info(f"Seeded {len(PRODUCTS)} products and 2 users")
    finally:
        db.close()


if __name__ == "__main__":
    from storefront.data.database import Base, engine

    Base.metadata.create_all(bind=engine)
    seed()
