#import every model so SQLAlchemy registers it in Base.metadata

from storefront.data.models.user import UserModel
from storefront.data.models.product import ProductModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_address import OrderAddressModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.conversation import ConversationModel, MessageModel
from storefront.data.models.wishlist import WishlistModel
from storefront.data.models.wishlist_item import WishlistItemModel

__all__ = [
    "UserModel",
    "ProductModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "OrderAddressModel",
    "PaymentModel",
    "ConversationModel",
    "MessageModel",
    "WishlistModel",
    "WishlistItemModel",
]
