# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import Actor, get_current_actor, require_admin, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import (
    MockPaymentIn,
    PaymentInitiateIn,
    PaymentInitiateOut,
    PaymentOut,
    PaymentResultOut,
    PaymentStatusIn,
    PaymentVerifyIn,
    WebhookResultOut,
)
from storefront.services.payment_service import PaymentService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


@router.post("/webhook", response_model=WebhookResultOut)
async def webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    svc: PaymentService = Depends(get_service),
):
    """
    Provider callback. No user identity, the signature over the raw body is
    the authentication.
    """
    if not x_razorpay_signature:
        raise HTTPException(status_code=400, detail="Missing signature")

    # exact bytes as received; re-serialized JSON would not match the signature
    raw_body = await request.body()

    try:
        return await run_in_threadpool(svc.process_webhook_event, raw_body, x_razorpay_signature)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/initiate", response_model=PaymentInitiateOut)
def initiate_payment(
    payload: PaymentInitiateIn,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.initiate(actor.user_id, payload.order_id, payload.provider)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/confirm", response_model=PaymentResultOut)
def confirm_payment(
    payload: PaymentVerifyIn,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.verify(payload.payment_id, payload.order_id, payload.signature, payload.provider)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/mock-success", response_model=PaymentResultOut)
def mock_payment_success(
    payload: MockPaymentIn,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.process_mock_payment(payload.order_id, actor.user_id)
    except ShopError as e:
        raise to_http_error(e)


@router.get("/orders/{order_id}", response_model=PaymentOut)
def get_order_payment(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.get_payment_by_order(order_id, actor.user_id, actor.role)
    except ShopError as e:
        raise to_http_error(e)


@router.patch("/{payment_id}", response_model=PaymentOut)
def update_payment_status(
    payment_id: int,
    payload: PaymentStatusIn,
    admin: Actor = Depends(require_admin),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.update_status(payment_id, payload.status, payload.provider_payment_id)
    except ShopError as e:
        raise to_http_error(e)
