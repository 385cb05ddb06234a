"""Ingredient model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Ingredient(Base):
    """Ingredient stock. current_stock may go negative."""

    __tablename__ = 'ingredient'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=True)
    current_stock = Column(Numeric(12, 3), nullable=False, default=0)
    reorder_threshold = Column(Numeric(12, 3), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    restaurant = relationship('Restaurant')

    def __repr__(self):
        return f"<Ingredient(id={self.id}, name='{self.name}', current_stock={self.current_stock})>"
