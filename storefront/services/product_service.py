# storefront/services/product_service.py
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel
from storefront.domain.errors import DuplicateSku, ProductNotFound
from storefront.domain.schemas import ProductCreate
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


def final_price(price: Decimal, discount_percentage: Decimal | None) -> Decimal:
    """Unit price after the percentage discount, not rounded."""
    discount = Decimal(discount_percentage or 0)
    return Decimal(price) * (Decimal(1) - discount / Decimal(100))


class ProductService:
    """Catalog reads plus the two admin writes (create, restock)."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ProductRepo(db)

    def search_products(self, query: str | None = None, limit: int = 20, offset: int = 0):
        products, total = self.repo.search(query, limit, offset)
        return {"products": products, "total": total, "limit": limit, "offset": offset}

    def get_product(self, product_id: int) -> ProductModel:
        product = self.repo.get_product(product_id)
        if not product:
            raise ProductNotFound()
        return product

    def create_product(self, payload: ProductCreate) -> ProductModel:
        if self.repo.get_by_sku(payload.sku):
            raise DuplicateSku()

        product = ProductModel(**payload.model_dump())
        try:
            created = self.repo.create_product(product)
        except IntegrityError:
            #someone inserted the same sku between our check and the insert
            self.db.rollback()
            raise DuplicateSku()

        logger.info(f"Product {created.id} ({created.sku}) created")
        return created

    def restock(self, product_id: int, quantity: int) -> ProductModel:
        product = self.get_product(product_id)
        self.repo.increment_stock(product_id, quantity)
        self.db.commit()
        logger.info(f"Product {product_id} restocked by {quantity}")
        return self.repo.refresh(product)
