"""Credit customer and credit ledger models."""
import enum

from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, DateTime, Enum, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class CreditTransactionType(str, enum.Enum):
    """Credit ledger entry type."""
    CREDIT = 'credit'          # Sale on credit (one row per order, corrected in place)
    PAYMENT = 'payment'        # Customer settled part of the balance
    ADJUSTMENT = 'adjustment'  # Signed correction, e.g. invoice void


# Enum columns store member names
CREDIT_ROW_CLAUSE = text("transaction_type = 'CREDIT'")


class CreditCustomer(Base):
    """Customer allowed to buy on credit."""

    __tablename__ = 'credit_customer'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    transactions = relationship('CreditTransaction', back_populates='credit_customer')

    def __repr__(self):
        return f"<CreditCustomer(id={self.id}, name='{self.name}')>"


class CreditTransaction(Base):
    """Credit ledger entry."""

    __tablename__ = 'credit_transaction'
    __table_args__ = (
        # At most one order-originated credit row per (restaurant, order)
        Index(
            'uq_credit_transaction_order',
            'restaurant_id', 'order_id',
            unique=True,
            postgresql_where=CREDIT_ROW_CLAUSE,
            sqlite_where=CREDIT_ROW_CLAUSE,
        ),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False)
    credit_customer_id = Column(BigInteger, ForeignKey('credit_customer.id'), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey('orders.id'), nullable=True)
    transaction_type = Column(Enum(CreditTransactionType, name='credit_transaction_type'), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # Signed for adjustments
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    payment_method = Column(String(20), nullable=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    credit_customer = relationship('CreditCustomer', back_populates='transactions')

    def __repr__(self):
        kind = self.transaction_type.value if self.transaction_type else None
        return f"<CreditTransaction(id={self.id}, type={kind}, amount={self.amount}, order_id={self.order_id})>"
