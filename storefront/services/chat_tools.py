# storefront/services/chat_tools.py
from typing import Any, Callable, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.domain.errors import ShopError
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.services.completion_client import FunctionCall
from storefront.services.notification_service import NotificationService
from storefront.services.product_service import CENT, final_price
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SEARCH_LIMIT = 5

# identity always comes from the authenticated request, never from the model
_IDENTITY_ARGS = ("user_id", "userId", "user", "owner_id", "ownerId")

TOOL_DEFINITIONS = [
    {
        "functionDeclarations": [
            {
                "name": "search_products",
                "description": "Search for products in the store catalog based on a query string.",
                "parameters": {
                    "type": "OBJECT",
                    "properties": {
                        "query": {
                            "type": "STRING",
                            "description": "The search term (e.g. 'running shoes', 'iphone')",
                        },
                    },
                    "required": ["query"],
                },
            },
            {
                "name": "get_order_status",
                "description": "Get the current status and payment state of one of the customer's orders.",
                "parameters": {
                    "type": "OBJECT",
                    "properties": {
                        "order_code": {
                            "type": "STRING",
                            "description": "The order number given by the customer.",
                        },
                    },
                    "required": ["order_code"],
                },
            },
            {
                "name": "escalate_to_human",
                "description": "Hand the conversation to a human agent when the customer is upset "
                               "or the request is too complex.",
                "parameters": {
                    "type": "OBJECT",
                    "properties": {
                        "reason": {
                            "type": "STRING",
                            "description": "Why the conversation is escalated.",
                        },
                    },
                    "required": ["reason"],
                },
            },
        ],
    },
]


class ToolRegistry:
    """
    Read-only tools the assistant may call.

    Tools that touch customer data get the user id from the caller, any
    identity argument the model adds is dropped. A failing tool turns into
    an {"error": ...} result for the model instead of failing the request.
    """

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.db = db
        self.products = ProductRepo(db)
        self.orders = OrderRepo(db)
        self.notification_service = notification_service or NotificationService()
        self._tools: Dict[str, Callable[[dict, int], dict]] = {
            "search_products": self.search_products,
            "get_order_status": self.get_order_status,
            "escalate_to_human": self.escalate_to_human,
        }

    @property
    def definitions(self) -> list[dict]:
        return TOOL_DEFINITIONS

    def execute(self, call: FunctionCall, user_id: int) -> Dict[str, Any]:
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning(f"[Tool] Unknown function {call.name} requested")
            return {"error": f"Function {call.name} not found"}

        args = call.args
        try:
            if args is None:
                args = {}
            if not isinstance(args, dict):
                raise TypeError(f"arguments must be an object, got {type(args).__name__}")
            args = {k: v for k, v in args.items() if k not in _IDENTITY_ARGS}
            return tool(args, user_id)
        except ShopError as e:
            logger.warning(f"[Tool] {call.name} failed: {e}")
            return {"error": e.detail}
        except SQLAlchemyError as e:
            logger.error(f"[Tool] {call.name} database error: {e}")
            self.db.rollback()
            return {"error": "Tool is temporarily unavailable"}
        except (TypeError, ValueError) as e:
            logger.warning(f"[Tool] {call.name} bad arguments {args!r}: {e}")
            return {"error": "Invalid arguments"}
        except Exception:
            logger.exception(f"[Tool] {call.name} crashed for user {user_id}")
            return {"error": "Tool failed"}

    def execute_all(self, calls: list[FunctionCall], user_id: int) -> list[dict]:
        """Runs the calls in order and returns functionResponse parts."""
        responses = []
        for call in calls:
            result = self.execute(call, user_id)
            responses.append(
                {
                    "functionResponse": {
                        "name": call.name,
                        "response": {"result": result},
                    }
                }
            )
        return responses

    # --- tools ---

    def search_products(self, args: dict, user_id: int) -> dict:
        query = str(args.get("query") or "").strip()
        if not query:
            return {"error": "query is required"}

        logger.info(f"[Tool] Searching products: {query}")
        products, _ = self.products.search(query, SEARCH_LIMIT, 0)

        if not products:
            return {"message": "No products found matching that query."}

        return {
            "products": [
                {
                    "id": p.id,
                    "title": p.title,
                    "price": str(p.price),
                    "final_price": str(final_price(p.price, p.discount_percentage).quantize(CENT)),
                    "stock": p.stock,
                    "availability_status": p.availability_status,
                }
                for p in products
            ]
        }

    def get_order_status(self, args: dict, user_id: int) -> dict:
        code = str(args.get("order_code") or "").strip().lstrip("#")
        logger.info(f"[Tool] Checking order {code} for user {user_id}")

        try:
            order_id = int(code)
        except ValueError:
            return {"error": "Invalid order ID format."}

        #scoped to the caller, someone else's order looks exactly like a missing one
        order = self.orders.get_user_order(order_id, user_id)
        if not order:
            return {"error": "Order not found or does not belong to you."}

        return {
            "id": order.id,
            "status": order.status,
            "total": str(order.total_amount),
            "payment_status": order.payment.status if order.payment else "UNPAID",
            "items": [f"{i.quantity}x {i.product.title}" for i in order.items],
            "date": order.created_at.isoformat(),
        }

    def escalate_to_human(self, args: dict, user_id: int) -> dict:
        reason = str(args.get("reason") or "unspecified").strip()[:500]
        logger.info(f"[Tool] Escalating user {user_id} to a human: {reason}")

        self.notification_service.escalate_to_human(user_id, reason)
        return {
            "escalated": True,
            "message": "I have notified a human specialist. They will review this "
                       "conversation and contact you shortly.",
        }
