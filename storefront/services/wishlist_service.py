# storefront/services/wishlist_service.py
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.wishlist import WishlistModel
from storefront.data.models.wishlist_item import WishlistItemModel
from storefront.domain.errors import ProductNotFound, WishlistItemNotFound
from storefront.repos.product_repo import ProductRepo
from storefront.repos.wishlist_repo import WishlistRepo
from storefront.services.cart_service import CartService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class WishlistService:
    """
    Saved-for-later products, one wishlist per user.
    No quantities and no stock check; stock is checked when an item is moved
    to the cart.
    """

    def __init__(self, db: Session, cart_service: CartService | None = None):
        self.repo = WishlistRepo(db)
        self.products = ProductRepo(db)
        self.carts = cart_service or CartService(db)

    #query
    def get_wishlist(self, user_id: int) -> Dict[str, Any]:
        wishlist = self.repo.get_by_user(user_id)
        if not wishlist:
            return {"wishlist_id": None, "user_id": user_id, "items": []}

        return {
            "wishlist_id": wishlist.id,
            "user_id": user_id,
            "items": [
                {"product_id": i.product_id, "added_at": i.added_at, "product": i.product}
                for i in self.repo.get_items(wishlist.id)
            ],
        }

    #commands
    def get_or_create_wishlist(self, user_id: int) -> WishlistModel:
        wishlist = self.repo.get_by_user(user_id)
        if wishlist:
            return wishlist

        try:
            created = self.repo.create_wishlist(WishlistModel(user_id=user_id))
        except IntegrityError:
            # created by a concurrent request
            self.repo.rollback()
            return self.repo.get_by_user(user_id)

        logger.info(f"Created wishlist {created.id} for user {user_id}")
        return created

    def add_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        if not self.products.get_product(product_id):
            raise ProductNotFound()

        wishlist = self.get_or_create_wishlist(user_id)

        if self.repo.get_item(wishlist.id, product_id):
            logger.info(f"Product {product_id} already in wishlist {wishlist.id}")
            return self.get_wishlist(user_id)

        try:
            self.repo.add_item(WishlistItemModel(wishlist_id=wishlist.id, product_id=product_id))
            logger.info(f"Added product {product_id} to wishlist {wishlist.id}")
        except IntegrityError:
            # same product added by a concurrent request
            self.repo.rollback()

        return self.get_wishlist(user_id)

    def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        wishlist = self.repo.get_by_user(user_id)
        if not wishlist or self.repo.delete_item(wishlist.id, product_id) == 0:
            raise WishlistItemNotFound()

        logger.info(f"Removed product {product_id} from wishlist {wishlist.id}")
        return self.get_wishlist(user_id)

    def move_to_cart(self, user_id: int, product_id: int) -> Dict[str, Any]:
        """
        Adds one unit to the cart (merging with an existing line), then drops
        the product from the wishlist. A failed cart add leaves the wishlist as is.
        """
        wishlist = self.repo.get_by_user(user_id)
        if not wishlist or not self.repo.get_item(wishlist.id, product_id):
            raise WishlistItemNotFound()

        cart = self.carts.add_product(user_id, product_id, 1)
        self.repo.delete_item(wishlist.id, product_id)

        logger.info(f"Moved product {product_id} from wishlist {wishlist.id} to cart {cart['cart_id']}")
        return cart
