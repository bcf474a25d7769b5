# storefront/services/inventory_ledger.py
from sqlalchemy.orm import Session

from storefront.domain.errors import InsufficientStock
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryLedger:
    """
    Stock movements bound to the caller's transaction.

    The ledger never commits. reserve() is a conditional decrement
    (UPDATE ... WHERE stock >= qty), so two concurrent orders can not both
    pass a check and then drive stock below zero.
    """

    def __init__(self, db: Session):
        self.repo = ProductRepo(db)

    def reserve(self, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        rowcount = self.repo.decrement_stock(product_id, quantity)
        if rowcount == 0:
            logger.info(f"Reserve of {quantity} x product {product_id} rejected")
            raise InsufficientStock(product_id)

        logger.info(f"Reserved {quantity} x product {product_id}")

    def release(self, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        rowcount = self.repo.increment_stock(product_id, quantity)
        if rowcount == 0:
            # product row vanished, the order still references it
            logger.warning(f"Release of {quantity} x product {product_id} matched no product")
            return

        logger.info(f"Released {quantity} x product {product_id}")
