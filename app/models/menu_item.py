"""Menu item model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class MenuItem(Base):
    """Menu item. Read-only for order processing."""

    __tablename__ = 'menu_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_packaged_good = Column(Boolean, nullable=False, default=False)
    tax_rate = Column(Numeric(5, 2), nullable=True)  # Nominal rate, packaged goods only
    hsn = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    restaurant = relationship('Restaurant')
    recipe = relationship('Recipe', uselist=False, back_populates='menu_item')

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name='{self.name}', packaged={self.is_packaged_good})>"
