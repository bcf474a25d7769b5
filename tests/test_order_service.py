from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import ADDRESS
from storefront.data.models import CartItemModel, OrderModel, PaymentModel
from storefront.domain.errors import (
    CannotCancel,
    CartEmpty,
    InsufficientStock,
    InvalidTransition,
    OrderNotFound,
    Unauthorized,
)
from storefront.domain.status import OrderStatus, Role
from storefront.services.inventory_ledger import InventoryLedger
from storefront.services.order_service import OrderService


@pytest.fixture
def service(db, notifier):
    return OrderService(db, notification_service=notifier)


def _cart_items(db, cart_id):
    return db.query(CartItemModel).filter_by(cart_id=cart_id).all()


def test_place_order_reserves_stock_and_empties_cart(db, service, notifier, user, make_product, fill_cart):
    product = make_product(price="100.00", discount="10", stock=5)
    cart = fill_cart(user, (product, 2))

    order = service.create_order_from_cart(user.id, ADDRESS)

    db.expire_all()
    assert order.status == OrderStatus.PENDING.value
    assert order.total_amount == Decimal("180.00")
    assert [(i.product_id, i.quantity, i.price) for i in order.items] == [(product.id, 2, Decimal("90.00"))]
    assert order.address.city == "Warsaw"
    assert db.get(type(product), product.id).stock == 3
    assert _cart_items(db, cart.id) == []
    assert notifier.orders == [(user.id, order.id, "created")]


def test_place_order_bumps_cart_version(db, service, user, make_product, fill_cart):
    product = make_product()
    cart = fill_cart(user, (product, 1))

    service.create_order_from_cart(user.id, ADDRESS)

    db.refresh(cart)
    assert cart.version == 2


def test_order_total_rounds_half_up(db, service, user, make_product, fill_cart):
    # 3 x 33.33 * 0.85 = 84.9915
    product = make_product(price="33.33", discount="15", stock=10)
    fill_cart(user, (product, 3))

    order = service.create_order_from_cart(user.id, ADDRESS)

    assert order.total_amount == Decimal("84.99")


def test_empty_cart_rejected(service, user):
    with pytest.raises(CartEmpty):
        service.create_order_from_cart(user.id, ADDRESS)


def test_insufficient_stock_places_nothing(db, service, notifier, user, make_product, fill_cart):
    plenty = make_product(stock=10)
    scarce = make_product(stock=1, title="Scarce Lamp")
    cart = fill_cart(user, (plenty, 2), (scarce, 3))

    with pytest.raises(InsufficientStock) as exc:
        service.create_order_from_cart(user.id, ADDRESS)

    assert "Scarce Lamp" in exc.value.detail
    db.expire_all()
    assert db.query(OrderModel).count() == 0
    assert db.get(type(plenty), plenty.id).stock == 10
    assert db.get(type(scarce), scarce.id).stock == 1
    assert len(_cart_items(db, cart.id)) == 2
    assert notifier.orders == []


def test_stock_lost_during_reservation_rolls_back_everything(db, service, user, make_product, fill_cart):
    first = make_product(stock=5)
    second = make_product(stock=5)
    cart = fill_cart(user, (first, 2), (second, 2))

    real = InventoryLedger(db)

    class RacingLedger:
        # a concurrent order takes the second product between check and reserve
        def reserve(self, product_id, quantity):
            if product_id == second.id:
                raise InsufficientStock(product_id)
            real.reserve(product_id, quantity)

        def release(self, product_id, quantity):
            real.release(product_id, quantity)

    service.ledger = RacingLedger()

    with pytest.raises(InsufficientStock):
        service.create_order_from_cart(user.id, ADDRESS)

    db.expire_all()
    assert db.query(OrderModel).count() == 0
    assert db.get(type(first), first.id).stock == 5
    assert len(_cart_items(db, cart.id)) == 2


def test_cancel_pending_restores_stock(db, service, notifier, user, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    order = service.create_order_from_cart(user.id, ADDRESS)

    cancelled = service.cancel(order.id, user.id)

    db.expire_all()
    assert cancelled.status == OrderStatus.CANCELLED.value
    assert db.get(type(product), product.id).stock == 5
    assert notifier.orders[-1] == (user.id, order.id, "cancelled")


def test_cancel_twice_releases_stock_once(db, service, user, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    order = service.create_order_from_cart(user.id, ADDRESS)
    service.cancel(order.id, user.id)

    with pytest.raises(CannotCancel):
        service.cancel(order.id, user.id)

    db.expire_all()
    assert db.get(type(product), product.id).stock == 5


def test_cancel_shipped_fails_and_changes_nothing(db, service, user, admin, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    order = service.create_order_from_cart(user.id, ADDRESS)
    service.apply_payment_success(order.id)
    db.commit()
    service.update_status(order.id, OrderStatus.SHIPPED, admin.id, Role.ADMIN)

    with pytest.raises(CannotCancel):
        service.cancel(order.id, user.id)

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.SHIPPED.value
    assert db.get(type(product), product.id).stock == 3


def test_other_user_cannot_cancel(db, service, user, other_user, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 1))
    order = service.create_order_from_cart(user.id, ADDRESS)

    with pytest.raises(Unauthorized):
        service.cancel(order.id, other_user.id)

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_admin_cancel_of_paid_order_restores_stock(db, service, user, admin, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    order = service.create_order_from_cart(user.id, ADDRESS)
    service.apply_payment_success(order.id)
    db.commit()

    service.update_status(order.id, OrderStatus.CANCELLED, admin.id, Role.ADMIN)

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.CANCELLED.value
    assert db.get(type(product), product.id).stock == 5


def test_admin_ships_and_delivers(db, service, notifier, user, admin, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)
    service.apply_payment_success(order.id)
    db.commit()

    service.update_status(order.id, "SHIPPED", admin.id, "ADMIN")
    delivered = service.update_status(order.id, "DELIVERED", admin.id, "ADMIN")

    assert delivered.status == OrderStatus.DELIVERED.value
    assert [e for _, _, e in notifier.orders] == ["created", "shipped", "delivered"]


def test_pending_order_cannot_be_shipped(db, service, user, admin, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)

    with pytest.raises(InvalidTransition):
        service.update_status(order.id, OrderStatus.SHIPPED, admin.id, Role.ADMIN)


def test_apply_payment_success_is_idempotent(db, service, user, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)

    assert service.apply_payment_success(order.id) is True
    db.commit()
    assert service.apply_payment_success(order.id) is True

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PAID.value


def test_apply_payment_success_leaves_cancelled_order(db, service, user, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)
    service.cancel(order.id, user.id)

    assert service.apply_payment_success(order.id) is False

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.CANCELLED.value


def test_get_order_scoping(service, user, other_user, admin, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)

    assert service.get_order(order.id, user.id).id == order.id
    assert service.get_order(order.id, admin.id, Role.ADMIN).id == order.id
    with pytest.raises(Unauthorized):
        service.get_order(order.id, other_user.id)
    with pytest.raises(OrderNotFound):
        service.get_order(999, user.id)


def test_list_orders(service, user, other_user, make_product, fill_cart):
    product = make_product(stock=20)
    for _ in range(3):
        fill_cart(user, (product, 1))
        service.create_order_from_cart(user.id, ADDRESS)
    fill_cart(other_user, (product, 1))
    service.create_order_from_cart(other_user.id, ADDRESS)

    mine = service.list_user_orders(user.id, limit=2)
    assert mine["total"] == 3
    assert len(mine["orders"]) == 2
    assert all(o.user_id == user.id for o in mine["orders"])

    everything = service.list_all_orders(status="PENDING")
    assert everything["total"] == 4


def test_expire_unpaid_orders_cancels_stale_pending(db, service, user, make_product, fill_cart):
    product = make_product(stock=5)
    fill_cart(user, (product, 2))
    stale = service.create_order_from_cart(user.id, ADDRESS)
    fill_cart(user, (product, 1))
    paid = service.create_order_from_cart(user.id, ADDRESS)
    service.apply_payment_success(paid.id)
    db.commit()

    later = datetime.now(timezone.utc) + timedelta(days=2)
    expired = service.expire_unpaid_orders(86400, now=later)

    assert expired == [stale.id]
    db.expire_all()
    assert db.get(OrderModel, stale.id).status == OrderStatus.CANCELLED.value
    assert db.get(OrderModel, paid.id).status == OrderStatus.PAID.value
    assert db.get(type(product), product.id).stock == 4


def test_expire_keeps_fresh_orders(db, service, user, make_product, fill_cart):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)

    assert service.expire_unpaid_orders(86400) == []
    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_cancelling_paid_order_warns_about_refund(db, service, user, make_product, fill_cart, caplog):
    fill_cart(user, (make_product(), 1))
    order = service.create_order_from_cart(user.id, ADDRESS)
    db.add(
        PaymentModel(
            order_id=order.id,
            provider="RAZORPAY",
            provider_order_id="order_refund",
            amount=order.total_amount,
            currency="INR",
            status="SUCCESS",
        )
    )
    service.apply_payment_success(order.id)
    db.commit()

    service.cancel(order.id, user.id)

    assert "refund needed" in caplog.text
