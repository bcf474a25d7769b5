from sqlalchemy import Column, Integer, ForeignKey, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class OrderAddressModel(Base):
    __tablename__ = "order_addresses"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)

    full_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(100), nullable=False)

    order = relationship("OrderModel", back_populates="address")
