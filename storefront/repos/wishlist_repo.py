# storefront/repos/wishlist_repo.py
from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from storefront.data.models.wishlist import WishlistModel
from storefront.data.models.wishlist_item import WishlistItemModel


class WishlistRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: int) -> WishlistModel | None:
        return self.db.execute(
            select(WishlistModel).where(WishlistModel.user_id == user_id)
        ).scalar_one_or_none()

    def create_wishlist(self, wishlist: WishlistModel) -> WishlistModel:
        self.db.add(wishlist)
        self.db.commit()
        self.db.refresh(wishlist)
        return wishlist

    def get_items(self, wishlist_id: int) -> list[WishlistItemModel]:
        # newest first
        return list(
            self.db.execute(
                select(WishlistItemModel)
                .where(WishlistItemModel.wishlist_id == wishlist_id)
                .order_by(WishlistItemModel.added_at.desc(), WishlistItemModel.id.desc())
            ).scalars().all()
        )

    def get_item(self, wishlist_id: int, product_id: int) -> WishlistItemModel | None:
        return self.db.execute(
            select(WishlistItemModel).where(
                WishlistItemModel.wishlist_id == wishlist_id,
                WishlistItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def add_item(self, item: WishlistItemModel) -> WishlistItemModel:
        self.db.add(item)
        self.db.commit()
        return item

    def delete_item(self, wishlist_id: int, product_id: int) -> int:
        result = self.db.execute(
            delete(WishlistItemModel).where(
                WishlistItemModel.wishlist_id == wishlist_id,
                WishlistItemModel.product_id == product_id,
            )
        )
        self.db.commit()
        return result.rowcount

    def rollback(self):
        self.db.rollback()
