"""
Order service - order placement (multi-restaurant).

The store is treated as independent collections: the order row, its lines,
ingredient stock and the credit ledger are written by separate commits.
Validation happens before the first write; after that, only the order and
line inserts are fatal (a failed line insert removes the order row again).
Stock, credit and notification steps are best-effort and logged.
"""
import logging
from decimal import Decimal
from typing import Dict, Any, List

from sqlalchemy.exc import SQLAlchemyError

from app.models import (
    Restaurant, Order, OrderLine, CreditCustomer,
    PaymentMethod, PaymentStatus, OrderStatus,
    normalize_payment_method, normalize_order_type
)
from app.exceptions import SaasError, ValidationError, PersistenceError
from app.services.tax_service import load_tax_policy, load_menu_items, item_tax_flags, compute_line, aggregate_totals
from app.services.stock_service import deduct_stock
from app.services.credit_ledger_service import sync_credit_ledger
from app.services.notification_service import dispatch_order_event, ORDER_CREATED
from app.blueprints.metrics import order_mutations_total, ledger_sync_failures_total
from app.utils.number_format import parse_id, parse_money, parse_quantity, to_money

logger = logging.getLogger(__name__)

MIXED_PAYMENT_TOLERANCE = Decimal('0.01')


def create_order(payload: dict, session) -> Dict[str, Any]:
    """
    Place an order (restaurant-scoped).

    Steps:
    1. Validate restaurant, lines, menu items, payment data (no writes)
    2. Compute line taxes and totals with the restaurant's current policy
    3. Insert order
    4. Insert order lines (cleanup order on failure)
    5. Deduct recipe stock per line (best-effort)
    6. Sync credit ledger for credit sales (best-effort)
    7. Notify owner (non-blocking)

    Args:
        payload: Dictionary with:
            - restaurant_id: int (REQUIRED)
            - lines (or items): list of {menu_item_id (or id), quantity, price,
              name, hsn}; tax flags always come from the menu item
            - table_number, order_type, payment_method, payment_status,
              special_instructions, customer_name, customer_phone,
              is_credit, credit_customer_id, mixed_payment_details
        session: SQLAlchemy session

    Returns:
        dict with order_id, order_number and totals

    Raises:
        ValidationError: For invalid input (nothing written)
        PersistenceError: If the order or its lines cannot be stored
    """
    try:
        result = _create_order(payload or {}, session)
    except SaasError as e:
        outcome = 'rejected' if e.status_code < 500 else 'failed'
        order_mutations_total.labels(operation='create', outcome=outcome).inc()
        raise
    order_mutations_total.labels(operation='create', outcome='success').inc()
    return result


def _create_order(payload: dict, session) -> Dict[str, Any]:
    # Step 1: Validate
    restaurant_id = payload.get('restaurant_id')
    raw_lines = payload.get('lines')
    if raw_lines is None:
        raw_lines = payload.get('items')

    if not restaurant_id:
        raise ValidationError('restaurant_id is required')
    if not isinstance(raw_lines, list) or len(raw_lines) == 0:
        raise ValidationError('Order must contain at least one item')

    restaurant = session.query(Restaurant).filter(
        Restaurant.id == restaurant_id,
        Restaurant.active == True
    ).first()
    if not restaurant:
        raise ValidationError(f'Restaurant {restaurant_id} not found')

    try:
        order_type = normalize_order_type(payload.get('order_type'))
        payment_method = normalize_payment_method(payload.get('payment_method'))
        payment_status = PaymentStatus(str(payload.get('payment_status') or 'pending').lower())
    except ValueError as e:
        raise ValidationError(str(e))

    requested_lines = _parse_lines(raw_lines)

    menu_items = load_menu_items(session, restaurant_id, requested_lines.keys())
    missing = [mid for mid in requested_lines if mid not in menu_items]
    if missing:
        raise ValidationError(f'Menu item(s) not found: {", ".join(str(m) for m in missing)}')

    is_credit = bool(payload.get('is_credit')) or payment_method == PaymentMethod.CREDIT
    credit_customer_id = payload.get('credit_customer_id')
    if is_credit:
        _validate_credit_customer(session, restaurant_id, credit_customer_id)
    else:
        credit_customer_id = None

    # Step 2: Taxes and totals
    policy = load_tax_policy(session, restaurant_id)
    prepared = []
    for menu_item_id, line in requested_lines.items():
        menu_item = menu_items[menu_item_id]
        is_packaged, item_rate = item_tax_flags(menu_item)
        price = line['price'] if line['price'] is not None else to_money(menu_item.price)

        tax = compute_line(
            price, line['quantity'], is_packaged, item_rate,
            policy['base_rate'], policy['gst_enabled'], policy['prices_include_tax']
        )
        prepared.append({
            'menu_item_id': menu_item_id,
            'item_name': line['name'] or menu_item.name,
            'quantity': line['quantity'],
            'price': price,
            'hsn': line['hsn'] or menu_item.hsn,
            'is_packaged_good': is_packaged,
            'tax': tax,
        })

    totals = aggregate_totals(p['tax'] for p in prepared)
    mixed_details = _validate_mixed_payment(payment_method, payload.get('mixed_payment_details'), totals['total_inc_tax'])

    # Step 3: Insert order
    order = Order(
        restaurant_id=restaurant_id,
        table_number=str(payload['table_number']) if payload.get('table_number') not in (None, '') else None,
        order_type=order_type,
        status=OrderStatus.NEW,
        payment_method=payment_method,
        payment_status=payment_status,
        mixed_payment_details=mixed_details,
        is_credit=is_credit,
        credit_customer_id=credit_customer_id,
        customer_name=payload.get('customer_name') or None,
        customer_phone=payload.get('customer_phone') or None,
        special_instructions=payload.get('special_instructions') or None,
        subtotal_ex_tax=totals['subtotal_ex_tax'],
        total_tax=totals['total_tax'],
        total_inc_tax=totals['total_inc_tax'],
        prices_include_tax=policy['gst_enabled'] and policy['prices_include_tax'],
        gst_enabled=policy['gst_enabled'],
        version=1
    )

    try:
        session.add(order)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER-CREATE] Order insert failed for restaurant {restaurant_id}: {e}")
        raise PersistenceError('Failed to create order')

    order_id = order.id

    # Step 4: Insert lines
    try:
        for p in prepared:
            session.add(_build_order_line(order_id, p))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER-CREATE] Line insert failed for order {order_id}: {e}")
        _cleanup_order(session, order_id)
        raise PersistenceError('Failed to create order items')

    # Step 5: Stock (best-effort)
    for p in prepared:
        try:
            deduct_stock(session, p['menu_item_id'], restaurant_id, p['quantity'], table_number=order.table_number)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[ORDER-CREATE] Stock deduction failed for item {p['menu_item_id']} on order {order_id}: {e}")

    # Step 6: Credit ledger (best-effort)
    try:
        sync_credit_ledger(session, order, totals)
    except SQLAlchemyError as e:
        session.rollback()
        ledger_sync_failures_total.labels(target='credit').inc()
        logger.error(f"[ORDER-CREATE] Credit ledger sync failed for order {order_id}: {e}")

    logger.info(
        f"[ORDER-CREATE] Order {order_id} created for restaurant {restaurant_id} "
        f"({len(prepared)} line(s), total {totals['total_inc_tax']})"
    )

    # Step 7: Notify (non-blocking)
    dispatch_order_event(ORDER_CREATED, restaurant_id, order_id, [
        {'menu_item_id': p['menu_item_id'], 'name': p['item_name'], 'quantity': p['quantity'], 'price': p['price']}
        for p in prepared
    ])

    return {
        'order_id': order_id,
        'order_number': order_id[:8].upper(),
        'totals': totals,
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _parse_lines(raw_lines: List[Any]) -> Dict[int, Dict[str, Any]]:
    """Validate request lines; duplicates of one menu item are merged."""
    lines: Dict[int, Dict[str, Any]] = {}

    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError('Each item must be an object')

        raw_id = raw.get('menu_item_id', raw.get('id'))
        if raw_id in (None, ''):
            raise ValidationError(f'Item "{raw.get("name") or "?"}" has no menu_item_id')

        try:
            menu_item_id = parse_id(raw_id)
            quantity = parse_quantity(raw.get('quantity'), default=1)
            price = parse_money(raw.get('price'), default=None) if raw.get('price') not in (None, '') else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f'Invalid item {raw_id}: {e}')

        if quantity <= 0:
            raise ValidationError(f'Quantity must be greater than 0 for menu item {menu_item_id}')

        if menu_item_id in lines:
            lines[menu_item_id]['quantity'] += quantity
            continue

        lines[menu_item_id] = {
            'name': (raw.get('name') or '').strip() or None,
            'quantity': quantity,
            'price': price,
            'hsn': raw.get('hsn') or None,
        }

    return lines


def _validate_credit_customer(session, restaurant_id: int, credit_customer_id) -> None:
    if not credit_customer_id:
        raise ValidationError('A credit customer is required for credit sales')

    customer = session.query(CreditCustomer).filter(
        CreditCustomer.id == credit_customer_id,
        CreditCustomer.restaurant_id == restaurant_id,
        CreditCustomer.active == True
    ).first()
    if not customer:
        raise ValidationError(f'Credit customer {credit_customer_id} not found')


def _validate_mixed_payment(payment_method: PaymentMethod, details, total: Decimal):
    """Cash + online split must add up to the order total."""
    if payment_method != PaymentMethod.MIXED:
        return None
    if not isinstance(details, dict):
        raise ValidationError('Mixed payment details are required')

    try:
        cash = parse_money(details.get('cash_amount'))
        online = parse_money(details.get('online_amount'))
    except ValueError as e:
        raise ValidationError(f'Invalid mixed payment amounts: {e}')

    if abs((cash + online) - total) > MIXED_PAYMENT_TOLERANCE:
        raise ValidationError('Mixed payment amounts do not match order total')

    return {
        'cash_amount': f'{cash:.2f}',
        'online_amount': f'{online:.2f}',
        'online_method': details.get('online_method') or 'upi',
        'is_mixed': True,
    }


def _build_order_line(order_id: str, prepared: Dict[str, Any]) -> OrderLine:
    tax = prepared['tax']
    return OrderLine(
        order_id=order_id,
        menu_item_id=prepared['menu_item_id'],
        item_name=prepared['item_name'],
        quantity=prepared['quantity'],
        price=prepared['price'],
        unit_price_ex_tax=tax['unit_ex'],
        unit_price_inc_tax=tax['unit_inc'],
        unit_tax_amount=tax['unit_tax'],
        tax_rate=tax['effective_rate'],
        is_packaged_good=prepared['is_packaged_good'],
        hsn=prepared['hsn']
    )


def _cleanup_order(session, order_id: str) -> None:
    """Remove an order row whose lines could not be stored (best-effort)."""
    try:
        session.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
        session.commit()
        logger.info(f"[ORDER-CREATE] Order {order_id} removed after failed line insert")
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER-CREATE] Cleanup of order {order_id} failed, orphan order row left: {e}")
