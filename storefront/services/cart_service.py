from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any
from sqlalchemy.orm import Session
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import (
    CartNotFound,
    ConcurrentModification,
    InsufficientStock,
    InvalidInput,
    ProductNotFound,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.product_service import CENT, final_price
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases, one cart per user.
    Commands (add, update, remove, clear) bump the cart version with an
    optimistic UPDATE ... WHERE version = old, queries only read.
    Stock is checked here for early feedback; the binding check happens
    when the order is placed.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)

        if not cart:
            return {
                "cart_id": None,
                "user_id": user_id,
                "version": 0,
                "items": [],
                "total_items": 0,
                "total_price": Decimal("0.00"),
            }

        items = self.repo.get_cart_items(cart.id)
        lines = []
        total = Decimal("0.00")
        for i in items:
            unit = final_price(i.product.price, i.product.discount_percentage)
            total += unit * i.quantity
            lines.append(
                {
                    "product_id": i.product_id,
                    "title": i.product.title,
                    "quantity": i.quantity,
                    "price": i.product.price,
                    "discount_percentage": i.product.discount_percentage,
                    "final_price": unit.quantize(CENT),
                    "stock": i.product.stock,
                }
            )

        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "version": cart.version,
            "items": lines,
            "total_items": sum(i.quantity for i in items),
            "total_price": total.quantize(CENT),
        }

    #commands
    def get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart

        created = self.repo.create_cart(CartModel(user_id=user_id, version=1))
        logger.info(f"Created cart {created.id} for user {user_id}")
        return created

    def add_product(self, user_id: int, product_id: int, quantity: int = 1) -> Dict[str, Any]:
        if quantity <= 0:
            raise InvalidInput("Quantity must be greater than 0")

        product = self.products.get_product(product_id)
        if not product:
            raise ProductNotFound()

        if product.stock < quantity:
            raise InsufficientStock(product_id)

        cart = self.get_or_create_cart(user_id)

        existing_item = self.repo.get_cart_item(cart.id, product_id)
        if existing_item:
            new_quantity = existing_item.quantity + quantity
            if product.stock < new_quantity:
                raise InsufficientStock(product_id)

            logger.info(
                f"Product {product_id} already in cart {cart.id}, quantity "
                f"{existing_item.quantity} -> {new_quantity}"
            )
            existing_item.quantity = new_quantity
            self.repo.add_cart_item(existing_item)
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            self.repo.add_cart_item(
                CartItemModel(cart_id=cart.id, product_id=product_id, quantity=quantity)
            )

        self._bump_version(cart)
        return self.get_cart(user_id)

    def update_quantity(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise InvalidInput("Quantity must be greater than 0")

        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            raise CartNotFound()

        item = self.repo.get_cart_item(cart.id, product_id)
        if not item:
            raise ProductNotFound("Product not in cart")

        if item.product.stock < quantity:
            raise InsufficientStock(product_id)

        item.quantity = quantity
        self.repo.add_cart_item(item)

        self._bump_version(cart)
        return self.get_cart(user_id)

    def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            raise CartNotFound()

        if self.repo.delete_cart_item(cart.id, product_id) == 0:
            raise ProductNotFound("Product not in cart")

        logger.info(f"Removed product {product_id} from cart {cart.id}")
        self._bump_version(cart)
        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            raise CartNotFound()

        self.repo.delete_all_items(cart.id)
        self._bump_version(cart)
        return self.get_cart(user_id)

    def _bump_version(self, cart: CartModel) -> None:
        old_version = cart.version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={
                "version": old_version + 1,
                "updated_at": datetime.now(timezone.utc),
            },
        )

        #0 rows -> another request changed the cart in between
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrentModification()

        self.repo.commit()
        logger.info(f"Cart {cart.id} now at version {old_version + 1}")
