"""Invoice models."""
import enum

from sqlalchemy import Column, BigInteger, String, Text, Integer, Boolean, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class InvoiceStatus(str, enum.Enum):
    """Invoice status enum."""
    OPEN = 'open'
    PAID = 'paid'
    VOID = 'void'


class Invoice(Base):
    """Tax invoice issued for one order."""

    __tablename__ = 'invoice'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey('orders.id'), nullable=False, unique=True)
    invoice_no = Column(String(40), nullable=True)
    status = Column(Enum(InvoiceStatus, name='invoice_status'), nullable=False, default=InvoiceStatus.PAID)
    is_open = Column(Boolean, nullable=False, default=False)
    payment_method = Column(String(20), nullable=True)
    credit_customer_id = Column(BigInteger, ForeignKey('credit_customer.id'), nullable=True)
    subtotal_ex_tax = Column(Numeric(10, 2), nullable=False, default=0)
    total_tax = Column(Numeric(10, 2), nullable=False, default=0)
    total_inc_tax = Column(Numeric(10, 2), nullable=False, default=0)
    regeneration_reason = Column(Text, nullable=True)
    closed_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order')
    items = relationship('InvoiceItem', back_populates='invoice', cascade='all, delete-orphan',
                         order_by='InvoiceItem.line_no')

    def __repr__(self):
        status = self.status.value if self.status else None
        return f"<Invoice(id={self.id}, order_id={self.order_id}, status={status})>"


class InvoiceItem(Base):
    """Invoice line, rebuilt from the order lines on every edit."""

    __tablename__ = 'invoice_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    invoice_id = Column(BigInteger, ForeignKey('invoice.id'), nullable=False, index=True)
    line_no = Column(Integer, nullable=False)
    item_name = Column(String(200), nullable=False)
    hsn = Column(String(20), nullable=True)
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)  # Unit price as entered on the order
    unit_rate_ex_tax = Column(Numeric(10, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    line_total_ex_tax = Column(Numeric(10, 2), nullable=False)
    line_total_inc_tax = Column(Numeric(10, 2), nullable=False)
    cess_rate = Column(Numeric(5, 2), nullable=False, default=0)
    cess_amount = Column(Numeric(10, 2), nullable=False, default=0)

    # Relationships
    invoice = relationship('Invoice', back_populates='items')

    def __repr__(self):
        return f"<InvoiceItem(invoice_id={self.invoice_id}, line_no={self.line_no}, qty={self.qty})>"
