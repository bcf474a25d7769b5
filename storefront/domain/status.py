# storefront/domain/status.py
from enum import Enum

from storefront.domain.errors import (
    AdminOnly,
    CannotCancel,
    InvalidTransition,
    Unauthorized,
)


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    # background jobs and payment callbacks
    SYSTEM = "SYSTEM"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(str, Enum):
    STRIPE = "STRIPE"
    RAZORPAY = "RAZORPAY"
    PAYPAL = "PAYPAL"


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PAID})
PAID_OR_LATER = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED})

OWNER = "OWNER"

#(current, requested) -> who may do it; OWNER means the user who placed the order
ORDER_TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], frozenset] = {
    (OrderStatus.PENDING, OrderStatus.PAID): frozenset({Role.SYSTEM}),
    (OrderStatus.PENDING, OrderStatus.CANCELLED): frozenset({OWNER, Role.ADMIN, Role.SYSTEM}),
    (OrderStatus.PAID, OrderStatus.SHIPPED): frozenset({Role.ADMIN}),
    (OrderStatus.PAID, OrderStatus.CANCELLED): frozenset({OWNER, Role.ADMIN}),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): frozenset({Role.ADMIN}),
}


def check_order_transition(
    current: OrderStatus,
    requested: OrderStatus,
    role: Role,
    is_owner: bool,
) -> None:
    """
    Single place deciding whether an order may move from `current` to
    `requested`. Raises the matching domain error, returns None when allowed.

    Role checks come before state checks so a plain user asking to ship an
    order learns it is admin-only, not that the order is in the wrong state.
    """
    current = OrderStatus(current)
    requested = OrderStatus(requested)
    role = Role(role)

    if requested == OrderStatus.CANCELLED:
        if not is_owner and role not in (Role.ADMIN, Role.SYSTEM):
            raise Unauthorized()
        if current not in CANCELLABLE:
            raise CannotCancel()

    if requested in (OrderStatus.SHIPPED, OrderStatus.DELIVERED) and role != Role.ADMIN:
        raise AdminOnly()

    allowed = ORDER_TRANSITIONS.get((current, requested))
    if allowed is None:
        raise InvalidTransition(f"Cannot move order from {current.value} to {requested.value}")

    if role in allowed or (is_owner and OWNER in allowed):
        return

    if requested == OrderStatus.CANCELLED:
        raise CannotCancel()
    raise InvalidTransition(f"{role.value} cannot move order from {current.value} to {requested.value}")
