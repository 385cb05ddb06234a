"""Order model."""
import enum
import uuid

from sqlalchemy import Column, BigInteger, String, Text, Boolean, Integer, Numeric, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class OrderStatus(str, enum.Enum):
    """Order lifecycle: new -> in_progress -> completed, or cancelled."""
    NEW = 'new'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


EDITABLE_STATUSES = (OrderStatus.NEW, OrderStatus.IN_PROGRESS)


class OrderType(str, enum.Enum):
    """Order type enum."""
    COUNTER = 'counter'
    DINE_IN = 'dine_in'
    PARCEL = 'parcel'


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""
    CASH = 'cash'
    ONLINE = 'online'
    CREDIT = 'credit'
    MIXED = 'mixed'


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""
    PENDING = 'pending'
    PAID = 'paid'
    CANCELLED = 'cancelled'


def normalize_payment_method(value) -> PaymentMethod:
    """
    Normalize payment method value for DB storage.

    Args:
        value: Can be None, PaymentMethod enum, or string

    Returns:
        PaymentMethod (defaults to CASH)

    Raises:
        ValueError: If value is invalid
    """
    if value is None or value == '':
        return PaymentMethod.CASH

    if isinstance(value, PaymentMethod):
        return value

    normalized = str(value).strip().lower()
    try:
        return PaymentMethod(normalized)
    except ValueError:
        valid = ', '.join(m.value for m in PaymentMethod)
        raise ValueError(f"Invalid payment method: {value}. Must be one of: {valid}.")


def normalize_order_type(value) -> OrderType:
    """Normalize order type ('dine-in' and 'dine_in' are both accepted)."""
    if value is None or value == '':
        return OrderType.COUNTER

    if isinstance(value, OrderType):
        return value

    normalized = str(value).strip().lower().replace('-', '_')
    try:
        return OrderType(normalized)
    except ValueError:
        raise ValueError(f"Invalid order type: {value}")


def _new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """Order placed at a restaurant."""

    __tablename__ = 'orders'

    id = Column(String(36), primary_key=True, default=_new_order_id)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    table_number = Column(String(20), nullable=True)
    order_type = Column(Enum(OrderType, name='order_type'), nullable=False, default=OrderType.COUNTER)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.NEW)

    # Payment
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False, default=PaymentMethod.CASH)
    payment_status = Column(Enum(PaymentStatus, name='payment_status'), nullable=False, default=PaymentStatus.PENDING)
    mixed_payment_details = Column(JSON, nullable=True)
    is_credit = Column(Boolean, nullable=False, default=False)
    credit_customer_id = Column(BigInteger, ForeignKey('credit_customer.id'), nullable=True)

    # Customer context (printed on tickets)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    special_instructions = Column(Text, nullable=True)

    # Totals (total_inc_tax == subtotal_ex_tax + total_tax)
    subtotal_ex_tax = Column(Numeric(10, 2), nullable=False, default=0)
    total_tax = Column(Numeric(10, 2), nullable=False, default=0)
    total_inc_tax = Column(Numeric(10, 2), nullable=False, default=0)

    # Tax policy snapshot at creation
    prices_include_tax = Column(Boolean, nullable=False, default=True)
    gst_enabled = Column(Boolean, nullable=False, default=False)

    # Bumped on every successful edit
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    restaurant = relationship('Restaurant')
    credit_customer = relationship('CreditCustomer')
    lines = relationship('OrderLine', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderLine.id')

    @property
    def order_number(self) -> str:
        """Short human-facing number printed on tickets."""
        return self.id[:8].upper() if self.id else ''

    @property
    def is_credit_sale(self) -> bool:
        return bool(self.is_credit) or self.payment_method == PaymentMethod.CREDIT

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def __repr__(self):
        status = self.status.value if self.status else None
        return f"<Order(id={self.id}, total_inc_tax={self.total_inc_tax}, status={status})>"
