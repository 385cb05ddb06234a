"""
Tax service - GST line computation and order totals.

Every monetary value is rounded to 2 decimals once, at line granularity,
and order totals are plain sums of those rounded values.

Rules for the effective rate of a line:
    1. GST disabled -> rate 0, price is final (no tax).
    2. Packaged good -> item's own rate if > 0, else restaurant base rate;
       the price is always an MRP (tax-inclusive).
    3. Service item -> restaurant base rate; inclusive or exclusive
       according to the restaurant's prices_include_tax setting.
"""
from decimal import Decimal
from typing import Dict, Any, Iterable, List, Optional, Tuple

from flask import current_app, has_app_context

from app.models import Order, OrderLine, MenuItem, RestaurantProfile
from app.utils.number_format import to_money, to_decimal, ZERO

DEFAULT_TAX_RATE = Decimal('5')
HUNDRED = Decimal('100')


def resolve_effective_rate(is_packaged: bool, item_tax_rate, base_rate, gst_enabled: bool) -> Decimal:
    """Tax rate actually applied to a line."""
    if not gst_enabled:
        return ZERO

    base = to_decimal(base_rate, DEFAULT_TAX_RATE)
    if is_packaged:
        item_rate = to_decimal(item_tax_rate, ZERO)
        return item_rate if item_rate > 0 else base
    return base


def compute_line(
    unit_price,
    quantity: int,
    is_packaged: bool,
    item_tax_rate,
    base_rate,
    gst_enabled: bool,
    prices_include_tax: bool
) -> Dict[str, Any]:
    """
    Compute the tax breakdown of one line.

    Args:
        unit_price: Unit price as entered (MRP for packaged goods)
        quantity: Units on the line
        is_packaged: Packaged good flag
        item_tax_rate: Nominal rate configured on the menu item
        base_rate: Restaurant default tax rate
        gst_enabled: Restaurant GST switch
        prices_include_tax: Restaurant inclusivity setting (service items only)

    Returns:
        dict with unit_ex, unit_inc, unit_tax, line_ex, tax, line_inc,
        effective_rate. The line always balances: line_inc == line_ex + tax.
    """
    price = to_decimal(unit_price, ZERO)
    qty = Decimal(int(quantity or 0))
    rate = resolve_effective_rate(is_packaged, item_tax_rate, base_rate, gst_enabled)

    if rate == 0:
        line_inc = to_money(price * qty)
        return {
            'unit_ex': to_money(price),
            'unit_inc': to_money(price),
            'unit_tax': ZERO,
            'line_ex': line_inc,
            'tax': ZERO,
            'line_inc': line_inc,
            'effective_rate': rate,
        }

    factor = 1 + rate / HUNDRED
    inclusive = bool(is_packaged) or bool(prices_include_tax)

    if inclusive:
        unit_inc = price
        unit_ex = price / factor
        line_inc = to_money(unit_inc * qty)
        line_ex = to_money(unit_ex * qty)
        tax = line_inc - line_ex
    else:
        unit_ex = price
        unit_inc = price * factor
        line_ex = to_money(unit_ex * qty)
        tax = to_money(line_ex * rate / HUNDRED)
        line_inc = line_ex + tax

    unit_ex_r = to_money(unit_ex)
    unit_inc_r = to_money(unit_inc)

    return {
        'unit_ex': unit_ex_r,
        'unit_inc': unit_inc_r,
        'unit_tax': unit_inc_r - unit_ex_r,
        'line_ex': line_ex,
        'tax': tax,
        'line_inc': line_inc,
        'effective_rate': rate,
    }


def aggregate_totals(line_results: Iterable[Dict[str, Any]]) -> Dict[str, Decimal]:
    """Sum pre-rounded line values into order totals (no re-rounding)."""
    subtotal_ex = ZERO
    total_tax = ZERO
    total_inc = ZERO

    for line in line_results:
        subtotal_ex += line['line_ex']
        total_tax += line['tax']
        total_inc += line['line_inc']

    return {
        'subtotal_ex_tax': subtotal_ex,
        'total_tax': total_tax,
        'total_inc_tax': total_inc,
    }


# =====================================================
# POLICY LOOKUPS
# =====================================================

def _default_tax_rate() -> Decimal:
    """Configured fallback rate when a restaurant has no profile."""
    if has_app_context():
        return to_decimal(current_app.config.get('DEFAULT_TAX_RATE'), DEFAULT_TAX_RATE)
    return DEFAULT_TAX_RATE


def load_tax_policy(session, restaurant_id: int) -> Dict[str, Any]:
    """
    Read the restaurant's current tax settings.

    Missing profile means GST off, default rate, inclusive prices.
    """
    profile = session.query(RestaurantProfile).filter(
        RestaurantProfile.restaurant_id == restaurant_id
    ).first()

    if not profile:
        return {
            'gst_enabled': False,
            'base_rate': _default_tax_rate(),
            'prices_include_tax': True,
            'inventory_alerts': False,
        }

    return {
        'gst_enabled': bool(profile.gst_enabled),
        'base_rate': to_decimal(profile.default_tax_rate, _default_tax_rate()),
        'prices_include_tax': bool(profile.prices_include_tax),
        'inventory_alerts': bool(profile.features_inventory_enabled),
    }


def policy_for_order(session, order: Order) -> Dict[str, Any]:
    """Tax policy for an existing order: creation snapshot + current base rate."""
    policy = load_tax_policy(session, order.restaurant_id)
    policy['gst_enabled'] = bool(order.gst_enabled)
    policy['prices_include_tax'] = bool(order.prices_include_tax)
    return policy


def item_tax_flags(menu_item: Optional[MenuItem], line: Optional[OrderLine] = None) -> Tuple[bool, Optional[Decimal]]:
    """(is_packaged, nominal rate) of a line; the current menu item wins over the line snapshot."""
    if menu_item is not None:
        return bool(menu_item.is_packaged_good), menu_item.tax_rate
    if line is not None:
        return bool(line.is_packaged_good), line.tax_rate
    return False, None


def compute_line_for_order_line(line: OrderLine, menu_item: Optional[MenuItem], policy: Dict[str, Any]) -> Dict[str, Any]:
    """Tax breakdown of a persisted line."""
    is_packaged, item_rate = item_tax_flags(menu_item, line)

    return compute_line(
        line.price,
        line.quantity,
        is_packaged,
        item_rate,
        policy['base_rate'],
        policy['gst_enabled'],
        policy['prices_include_tax'],
    )


def load_menu_items(session, restaurant_id: int, menu_item_ids: Iterable) -> Dict[int, MenuItem]:
    """Fetch menu items of a restaurant in one query, keyed by id."""
    ids = {int(mid) for mid in menu_item_ids if mid is not None}
    if not ids:
        return {}

    items = session.query(MenuItem).filter(
        MenuItem.id.in_(ids),
        MenuItem.restaurant_id == restaurant_id
    ).all()
    return {item.id: item for item in items}


def compute_order_totals(session, order: Order, lines: Optional[List[OrderLine]] = None) -> Tuple[Dict[str, Decimal], List[Tuple[OrderLine, Dict[str, Any]]]]:
    """
    Recompute order totals from scratch from its persisted lines.

    Args:
        session: SQLAlchemy session
        order: Order whose lines are re-read
        lines: Already loaded lines (re-read from the store when omitted)

    Returns:
        (totals dict, list of (line, line tax dict)) in line id order
    """
    if lines is None:
        lines = session.query(OrderLine).filter(
            OrderLine.order_id == order.id
        ).order_by(OrderLine.id).all()

    policy = policy_for_order(session, order)
    menu_items = load_menu_items(session, order.restaurant_id, [l.menu_item_id for l in lines])

    breakdown = []
    for line in lines:
        if not line.quantity:
            continue
        result = compute_line_for_order_line(line, menu_items.get(line.menu_item_id), policy)
        breakdown.append((line, result))

    return aggregate_totals(result for _, result in breakdown), breakdown
