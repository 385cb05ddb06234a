"""Order Line model."""
from sqlalchemy import Column, BigInteger, String, Integer, Boolean, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base, BigIntPK


class OrderLine(Base):
    """Order Line (one menu item of an order)."""

    __tablename__ = 'order_line'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey('orders.id'), nullable=False, index=True)
    menu_item_id = Column(BigInteger, ForeignKey('menu_item.id'), nullable=True)
    item_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # Unit price as entered
    unit_price_ex_tax = Column(Numeric(10, 2), nullable=False, default=0)
    unit_price_inc_tax = Column(Numeric(10, 2), nullable=False, default=0)
    unit_tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # Effective rate applied
    is_packaged_good = Column(Boolean, nullable=False, default=False)
    hsn = Column(String(20), nullable=True)

    # Relationships
    order = relationship('Order', back_populates='lines')
    menu_item = relationship('MenuItem')

    def __repr__(self):
        return f"<OrderLine(id={self.id}, menu_item_id={self.menu_item_id}, qty={self.quantity})>"
