# storefront/services/order_service.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_address import OrderAddressModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.unit_of_work import UnitOfWork
from storefront.domain.errors import (
    CartEmpty,
    ConcurrentModification,
    InsufficientStock,
    OrderNotFound,
    ShopError,
    Unauthorized,
)
from storefront.domain.status import OrderStatus, PaymentStatus, Role, check_order_transition
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.inventory_ledger import InventoryLedger
from storefront.services.notification_service import NotificationService
from storefront.services.product_service import final_price
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


class OrderService:
    """
    Order lifecycle.

    Placing an order and cancelling it are the two operations that move
    stock; both run inside one unit of work together with the order change,
    so stock and orders never disagree. Every status change goes through
    check_order_transition.
    """

    def __init__(
        self,
        db: Session,
        notification_service: NotificationService | None = None,
        unit_of_work: UnitOfWork | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.ledger = InventoryLedger(db)
        self.uow = unit_of_work or UnitOfWork(db)
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # COMMANDS
    # =====================================================
    def create_order_from_cart(self, user_id: int, address: dict) -> OrderModel:
        """
        Use case: place an order from the user's cart.

        1. Cart must have items
        2. Every item must be in stock (no partial orders)
        3. One transaction: order + items + address, stock reserve, cart emptied
        4. Notification after commit
        """
        cart = self.carts.get_cart_by_user(user_id)
        items = self.carts.get_cart_items(cart.id) if cart else []

        if not items:
            raise CartEmpty()

        for item in items:
            if item.product.stock < item.quantity:
                raise InsufficientStock(
                    item.product_id,
                    f"Insufficient stock for {item.product.title}",
                )

        total = Decimal("0")
        lines = []
        for item in items:
            unit = final_price(item.product.price, item.product.discount_percentage)
            total += unit * item.quantity
            lines.append(
                OrderItemModel(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=unit.quantize(CENT, rounding=ROUND_HALF_UP),
                )
            )
        total = total.quantize(CENT, rounding=ROUND_HALF_UP)

        cart_id = cart.id
        cart_version = cart.version
        reservations = [(i.product_id, i.quantity) for i in items]

        def work(db: Session) -> OrderModel:
            order = OrderModel(
                user_id=user_id,
                status=OrderStatus.PENDING.value,
                total_amount=total,
                items=lines,
                address=OrderAddressModel(**address),
            )
            self.repo.add_order(order)

            #conditional decrement, raises InsufficientStock -> whole transaction rolls back
            for product_id, quantity in reservations:
                self.ledger.reserve(product_id, quantity)

            self.carts.delete_all_items(cart_id)

            #cart changed after we read it -> our snapshot is stale
            rowcount = self.carts.update_cart_version(
                cart_id=cart_id,
                old_version=cart_version,
                new_data={
                    "version": cart_version + 1,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
            if rowcount == 0:
                raise ConcurrentModification("Cart was modified while placing the order, retry")

            return order

        order = self.uow.run(work)

        logger.info(f"Order {order.id} created from cart {cart_id}, total {order.total_amount}")
        self.notification_service.send_order_notification(user_id, order.id, "created")

        return order

    def update_status(self, order_id: int, new_status, actor_id: int | None, actor_role) -> OrderModel:
        """
        Use case: explicit status change (cancel by owner/admin, ship/deliver by admin).
        """
        new_status = OrderStatus(new_status)
        actor_role = Role(actor_role)

        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound()

        if new_status == OrderStatus.CANCELLED:
            return self._cancel(order_id, actor_id, actor_role)

        is_owner = actor_id is not None and order.user_id == actor_id
        check_order_transition(order.status, new_status, actor_role, is_owner)

        def work(db: Session) -> OrderModel:
            locked = self.repo.get_order_for_update(order_id)
            # status may have moved while we were checking
            check_order_transition(locked.status, new_status, actor_role, is_owner)
            locked.status = new_status.value
            return locked

        updated = self.uow.run(work)

        logger.info(f"Order {order_id} -> {new_status.value} by {actor_role.value} {actor_id}")
        self.notification_service.send_order_notification(updated.user_id, order_id, new_status.value.lower())

        return updated

    def cancel(self, order_id: int, user_id: int, role=Role.USER) -> OrderModel:
        """
        Use case: cancel an order and put its stock back.
        """
        role = Role(role)
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound()

        return self._cancel(order_id, user_id, role)

    def _cancel(self, order_id: int, actor_id: int | None, actor_role: Role) -> OrderModel:
        def work(db: Session) -> OrderModel:
            order = self.repo.get_order_for_update(order_id)
            if not order:
                raise OrderNotFound()

            is_owner = actor_id is not None and order.user_id == actor_id
            #checked under the row lock, two cancels can not both release stock
            check_order_transition(order.status, OrderStatus.CANCELLED, actor_role, is_owner)

            order.status = OrderStatus.CANCELLED.value
            for item in order.items:
                self.ledger.release(item.product_id, item.quantity)

            return order

        cancelled = self.uow.run(work)

        if cancelled.payment is not None and cancelled.payment.status == PaymentStatus.SUCCESS.value:
            logger.warning(f"Order {order_id} cancelled after payment {cancelled.payment.id} succeeded, refund needed")

        logger.info(f"Order {order_id} cancelled by {actor_role.value} {actor_id}")
        self.notification_service.send_order_notification(cancelled.user_id, order_id, "cancelled")

        return cancelled

    def apply_payment_success(self, order_id: int) -> bool:
        """
        Moves the order to PAID inside the caller's transaction (no commit).

        Returns True when the order is (now or already) paid. Orders that were
        cancelled meanwhile are left alone and reported with False.
        """
        order = self.repo.get_order_for_update(order_id)
        if not order:
            raise OrderNotFound()

        current = OrderStatus(order.status)
        if current == OrderStatus.PENDING:
            check_order_transition(current, OrderStatus.PAID, Role.SYSTEM, False)
            order.status = OrderStatus.PAID.value
            return True

        if current in (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            return True

        logger.warning(f"Payment succeeded for order {order_id} in status {current.value}, order left unchanged")
        return False

    def expire_unpaid_orders(self, ttl_seconds: int, now: datetime | None = None) -> list[int]:
        """
        System cancellation of PENDING orders older than ttl_seconds.
        One transaction per order; a failing order is logged and skipped.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=ttl_seconds)

        expired = []
        for order in self.repo.list_stale_pending(cutoff):
            try:
                self._cancel(order.id, None, Role.SYSTEM)
                expired.append(order.id)
            except ShopError as e:
                logger.warning(f"Could not expire order {order.id}: {e}")

        logger.info(f"Expired {len(expired)} unpaid orders")
        return expired

    # =====================================================
    # QUERIES
    # =====================================================
    def get_order(self, order_id: int, user_id: int, role=Role.USER) -> OrderModel:
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFound()

        if order.user_id != user_id and Role(role) != Role.ADMIN:
            raise Unauthorized()

        return order

    def list_user_orders(self, user_id: int, status=None, limit: int = 10, offset: int = 0):
        status_value = OrderStatus(status).value if status else None
        orders, total = self.repo.list_orders(user_id, status_value, limit, offset)
        return {"orders": orders, "total": total, "limit": limit, "offset": offset}

    def list_all_orders(self, status=None, limit: int = 20, offset: int = 0):
        status_value = OrderStatus(status).value if status else None
        orders, total = self.repo.list_orders(None, status_value, limit, offset)
        return {"orders": orders, "total": total, "limit": limit, "offset": offset}
