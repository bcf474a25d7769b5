# storefront/repos/payment_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def get_by_order(self, order_id: int) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id)
        ).scalar_one_or_none()

    def get_by_provider_order_id(self, provider_order_id: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(PaymentModel.provider_order_id == provider_order_id)
        ).scalar_one_or_none()

    def get_for_update(self, payment_id: int) -> PaymentModel | None:
        # re-read inside the transaction, row locked where the database supports it
        return self.db.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def latch_success(self, payment_id: int, provider_payment_id: str | None) -> int:
        """
        UPDATE ... SET status = SUCCESS WHERE status != SUCCESS.
        Zero rows means somebody else already latched it.
        """
        values = {"status": "SUCCESS"}
        if provider_payment_id:
            values["provider_payment_id"] = provider_payment_id
        result = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status != "SUCCESS")
            .values(**values)
        )
        return result.rowcount

    def refresh(self, payment: PaymentModel) -> PaymentModel:
        self.db.refresh(payment)
        return payment
