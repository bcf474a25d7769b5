# storefront/repos/product_repo.py
from sqlalchemy import select, func, or_, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_by_sku(self, sku: str) -> ProductModel | None:
        return self.db.execute(
            select(ProductModel).where(ProductModel.sku == sku)
        ).scalar_one_or_none()

    def search(self, query: str | None, limit: int, offset: int) -> tuple[list[ProductModel], int]:
        stmt = select(ProductModel)
        if query:
            pattern = f"%{query.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(ProductModel.title).like(pattern),
                    func.lower(ProductModel.description).like(pattern),
                    func.lower(ProductModel.category).like(pattern),
                )
            )

        total = self.db.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        products = self.db.execute(
            stmt.order_by(ProductModel.id).limit(limit).offset(offset)
        ).scalars().all()
        return list(products), total

    def create_product(self, product: ProductModel) -> ProductModel:
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    # conditional stock updates, used by the inventory ledger inside a transaction
    def decrement_stock(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
        )
        return result.rowcount

    def increment_stock(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock=ProductModel.stock + quantity)
        )
        return result.rowcount

    def refresh(self, product: ProductModel) -> ProductModel:
        self.db.refresh(product)
        return product
