from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    # one payment row per order, re-initiation overwrites it
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    provider = Column(String(20), nullable=False)  # STRIPE, RAZORPAY, PAYPAL
    provider_order_id = Column(String(64), nullable=True, unique=True, index=True)
    provider_payment_id = Column(String(64), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="CREATED")  # CREATED, PENDING, SUCCESS, FAILED, REFUNDED

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    order = relationship("OrderModel", back_populates="payment")
