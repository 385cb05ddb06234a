"""Models package - exports all SQLAlchemy models."""
# Restaurant & catalog (read-only for order processing)
from app.models.restaurant import Restaurant, RestaurantProfile
from app.models.menu_item import MenuItem
from app.models.recipe import Recipe, RecipeItem

# Inventory
from app.models.ingredient import Ingredient
from app.models.alert_notification import AlertNotification

# Orders
from app.models.order import (
    Order, OrderStatus, OrderType, PaymentMethod, PaymentStatus, EDITABLE_STATUSES,
    normalize_payment_method, normalize_order_type
)
from app.models.order_line import OrderLine

# Invoicing & credit
from app.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from app.models.credit import CreditCustomer, CreditTransaction, CreditTransactionType, CREDIT_ROW_CLAUSE

__all__ = [
    'Restaurant', 'RestaurantProfile', 'MenuItem', 'Recipe', 'RecipeItem',
    'Ingredient', 'AlertNotification',
    'Order', 'OrderStatus', 'OrderType', 'PaymentMethod', 'PaymentStatus', 'EDITABLE_STATUSES',
    'normalize_payment_method', 'normalize_order_type', 'OrderLine',
    'Invoice', 'InvoiceItem', 'InvoiceStatus',
    'CreditCustomer', 'CreditTransaction', 'CreditTransactionType', 'CREDIT_ROW_CLAUSE',
]
