"""Restaurant and restaurant profile models."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Restaurant(Base):
    """Restaurant - each tenant of the platform."""

    __tablename__ = 'restaurant'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    profile = relationship('RestaurantProfile', uselist=False, back_populates='restaurant')

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name='{self.name}')>"


class RestaurantProfile(Base):
    """Tax and inventory settings of a restaurant (1:1)."""

    __tablename__ = 'restaurant_profile'

    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), primary_key=True)
    gst_enabled = Column(Boolean, nullable=False, default=False)
    default_tax_rate = Column(Numeric(5, 2), nullable=False, default=5)
    prices_include_tax = Column(Boolean, nullable=False, default=True)
    features_inventory_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationship
    restaurant = relationship('Restaurant', back_populates='profile')

    def __repr__(self):
        return (
            f"<RestaurantProfile(restaurant_id={self.restaurant_id}, gst_enabled={self.gst_enabled}, "
            f"default_tax_rate={self.default_tax_rate}, prices_include_tax={self.prices_include_tax})>"
        )
