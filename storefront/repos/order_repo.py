# storefront/repos/order_repo.py
from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        # flush only, the caller's unit of work commits
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_order_for_update(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_user_order(self, order_id: int, user_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(
                OrderModel.id == order_id,
                OrderModel.user_id == user_id,
            )
        ).scalar_one_or_none()

    def list_orders(
        self,
        user_id: int | None,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[OrderModel], int]:
        stmt = select(OrderModel)
        if user_id is not None:
            stmt = stmt.where(OrderModel.user_id == user_id)
        if status:
            stmt = stmt.where(OrderModel.status == status)

        total = self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        orders = self.db.execute(
            stmt.options(
                selectinload(OrderModel.items),
                selectinload(OrderModel.address),
                selectinload(OrderModel.payment),
            )
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(orders), total

    def list_stale_pending(self, created_before) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel).where(
                    OrderModel.status == "PENDING",
                    OrderModel.created_at < created_before,
                )
            ).scalars().all()
        )

    def refresh(self, order: OrderModel) -> OrderModel:
        self.db.refresh(order)
        return order
