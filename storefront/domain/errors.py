# storefront/domain/errors.py
"""
Domain errors.

Every error carries the HTTP status the API answers with. The classes also
derive from the matching builtin (ValueError, LookupError, PermissionError,
RuntimeError) so callers that only care about the broad category can keep
catching those.
"""


class ShopError(Exception):
    status_code = 500
    message = "Unexpected error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


# 400 - caller's fault
class InvalidInput(ShopError, ValueError):
    status_code = 400
    message = "Invalid request data"


class InvalidSignature(InvalidInput):
    # fixed message, never says which part of the signature did not match
    message = "Invalid payment signature"

    def __init__(self):
        super().__init__(self.message)


# 404
class NotFound(ShopError, LookupError):
    status_code = 404
    message = "Not found"


class ProductNotFound(NotFound):
    message = "Product not found"


class CartNotFound(NotFound):
    message = "Cart not found"


class OrderNotFound(NotFound):
    message = "Order not found"


class PaymentNotFound(NotFound):
    message = "Payment not found"


class UserNotFound(NotFound):
    message = "User not found"


class WishlistItemNotFound(NotFound):
    message = "Item not found in wishlist"


# 403
class Forbidden(ShopError, PermissionError):
    status_code = 403
    message = "Forbidden"


class Unauthorized(Forbidden):
    message = "Unauthorized access"


class AdminOnly(Forbidden):
    message = "Admin access required"


# 400 / 409 - the current state rules the operation out
class Conflict(ShopError, ValueError):
    status_code = 400
    message = "Operation not allowed in the current state"


class CartEmpty(Conflict):
    message = "Cart is empty"


class InsufficientStock(Conflict):
    message = "Insufficient stock for one or more items"

    def __init__(self, product_id: int | None = None, message: str | None = None):
        self.product_id = product_id
        super().__init__(message)


class CannotCancel(Conflict):
    message = "Order cannot be cancelled at this stage"


class InvalidTransition(Conflict):
    message = "Order status transition not allowed"


class OrderAlreadyPaid(Conflict):
    message = "Order already paid"


class OrderCancelled(Conflict):
    message = "Order is cancelled"


class PaymentAlreadyCompleted(Conflict):
    status_code = 409
    message = "Payment already completed"


class DuplicateSku(Conflict):
    status_code = 409
    message = "Product with this SKU already exists"


class DuplicateEmail(Conflict):
    status_code = 409
    message = "User with this email already exists"


class ConcurrentModification(Conflict):
    status_code = 409
    message = "Resource was modified by another request, retry"


class ConversationBusy(Conflict):
    status_code = 409
    message = "Another message is still being processed"


# 5xx
class ExternalServiceError(ShopError, RuntimeError):
    status_code = 500
    message = "External service failure"


class PaymentGatewayError(ExternalServiceError):
    message = "Payment gateway error"


class CompletionServiceError(ExternalServiceError):
    message = "Completion service error"


class InvariantViolation(ShopError, RuntimeError):
    status_code = 500
    message = "State invariant violated"
