# storefront/data/unit_of_work.py
from typing import Callable, TypeVar

from sqlalchemy.orm import Session

from storefront.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class UnitOfWork:
    """
    All-or-nothing wrapper for multi-statement writes.

    Services hand over a closure; everything it does on the session is
    committed together or rolled back together. Repositories and the
    inventory ledger called inside the closure must only flush, never commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def run(self, work: Callable[[Session], T]) -> T:
        try:
            result = work(self.db)
            self.db.commit()
        except Exception:
            logger.warning("Transaction rolled back")
            self.db.rollback()
            raise
        return result
