"""
Order Edit Service - in-place edit of a placed order (multi-restaurant).

The client sends the FULL desired line list. The edit is reconciled against
the persisted order without a surrounding transaction:

    Validate -> Diff -> Apply(stock) -> Persist(lines) -> Recompute(totals)
             -> Persist(order) -> SyncLedger(credit) -> SyncInvoice -> Respond

- Validation errors abort before any write.
- Stock moves mirror the diff: deduct on add/increase, restore on
  removal/decrease, only ever by the changed quantity.
- A failed line or order write aborts the edit with PartialApplicationError
  (stock already moved is not rolled back).
- Totals are recomputed from the re-read persisted lines, never from the diff.
- Credit ledger and invoice sync failures are logged; the edit still succeeds.
- Only added and increased quantities are returned for KOT reprinting.
"""
import logging
from typing import Dict, Any, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from app.models import Order, OrderLine, OrderStatus
from app.exceptions import (
    SaasError, ValidationError, NotFoundError, InvalidStateError,
    ConcurrentEditError, PartialApplicationError
)
from app.services.tax_service import (
    policy_for_order, load_menu_items, item_tax_flags, compute_line_for_order_line, compute_order_totals
)
from app.services.stock_service import deduct_stock, restore_stock
from app.services.credit_ledger_service import sync_credit_ledger
from app.services.invoice_sync_service import resync_invoice
from app.services.notification_service import dispatch_order_event, ORDER_CHANGED
from app.blueprints.metrics import order_mutations_total, ledger_sync_failures_total
from app.utils.number_format import parse_id, parse_money, parse_quantity, ZERO

logger = logging.getLogger(__name__)

DEFAULT_EDIT_REASON = 'Order edited from dashboard'

# Diff actions
ADDED_FULL = 'ADDED_FULL'
INCREASED = 'INCREASED'
REMOVED_PARTIAL = 'REMOVED_PARTIAL'
REMOVED_FULL = 'REMOVED_FULL'


def edit_order(
    order_id: str,
    restaurant_id: int,
    lines: list,
    session,
    reason: str = DEFAULT_EDIT_REASON,
    expected_version: Optional[int] = None
) -> Dict[str, Any]:
    """
    Edit an order in place from its desired final line list (restaurant-scoped).

    Args:
        order_id: ID of the order to edit
        restaurant_id: Restaurant ID (REQUIRED for multi-tenant enforcement)
        lines: Full desired state, list of dicts with
            {'menu_item_id' or 'name', 'quantity', 'price', 'hsn'}
        session: SQLAlchemy session
        reason: Edit reason printed on the ticket
        expected_version: Order version the client edited; stale -> 409

    Returns:
        dict with order_id, order_number and order_for_print (KOT delta)

    Raises:
        ValidationError: No usable lines (nothing written)
        NotFoundError: Order missing or foreign (nothing written)
        InvalidStateError: Order completed/cancelled (nothing written)
        ConcurrentEditError: Stale expected_version (nothing written), or another
            edit committed the order header first (lines already written)
        PartialApplicationError: A line/order write failed after stock moved
    """
    try:
        result = _edit_order(order_id, restaurant_id, lines, session, reason or DEFAULT_EDIT_REASON, expected_version)
    except SaasError as e:
        outcome = 'rejected' if e.status_code < 500 else 'failed'
        order_mutations_total.labels(operation='edit', outcome=outcome).inc()
        raise
    order_mutations_total.labels(operation='edit', outcome='success').inc()
    return result


def _edit_order(order_id, restaurant_id, lines, session, reason, expected_version) -> Dict[str, Any]:
    # Step 1: Validate (no side effects)
    if not order_id or not restaurant_id or not isinstance(lines, list):
        raise ValidationError('order_id, restaurant_id, lines required')

    desired_lines = _normalize_lines(lines)
    if not desired_lines:
        raise ValidationError('Order must contain at least one item')

    order = session.query(Order).filter(
        Order.id == order_id,
        Order.restaurant_id == restaurant_id
    ).first()

    if not order:
        raise NotFoundError('Order not found')

    if not order.is_editable:
        status_str = order.status.value if order.status else 'unknown'
        raise InvalidStateError(f'Only NEW or IN_PROGRESS orders can be edited. Current status: {status_str}')

    loaded_version = int(order.version or 1)
    if expected_version is not None and int(expected_version) != loaded_version:
        raise ConcurrentEditError(order_id, expected_version, loaded_version)

    current_lines = session.query(OrderLine).filter(
        OrderLine.order_id == order_id
    ).order_by(OrderLine.id).all()

    desired = _resolve_lines(desired_lines, current_lines)
    if not desired:
        raise ValidationError('No valid menu_item_id in lines')

    current = {line.menu_item_id: line for line in current_lines if line.menu_item_id}

    new_ids = [mid for mid in desired if mid not in current]
    menu_items = load_menu_items(session, restaurant_id, list(desired) + list(current))
    unknown = [mid for mid in new_ids if mid not in menu_items]
    if unknown:
        raise ValidationError(f'Menu item(s) not found: {", ".join(str(m) for m in unknown)}')

    _fill_missing_fields(desired, current, menu_items)

    # Step 2: Diff
    plan = _diff(current, desired)

    # Step 3: Apply stock
    applied_steps = []
    table_number = order.table_number
    for entry in plan['removed_full'] + plan['removed_partial']:
        _move_stock(session, restore_stock, entry['menu_item_id'], restaurant_id, entry['quantity'], order_id, table_number)
    for entry in plan['added'] + plan['increased']:
        _move_stock(session, deduct_stock, entry['menu_item_id'], restaurant_id, entry['quantity'], order_id, table_number)
    applied_steps.append('stock')

    # Step 4: Persist lines
    policy = policy_for_order(session, order)
    _persist_lines(session, order_id, plan, current, desired, menu_items, policy, applied_steps)

    # Step 5: Recompute totals from persisted state
    try:
        totals, _ = compute_order_totals(session, order)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER-EDIT] Reloading lines of order {order_id} failed: {e}")
        raise PartialApplicationError('Failed to reload order items', applied_steps, 'recompute_totals')

    # Step 6: Persist order header, only over the version read in step 1
    try:
        written = session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.restaurant_id == restaurant_id,
                Order.version == loaded_version
            )
            .values(
                subtotal_ex_tax=totals['subtotal_ex_tax'],
                total_tax=totals['total_tax'],
                total_inc_tax=totals['total_inc_tax'],
                status=OrderStatus.NEW,
                version=loaded_version + 1
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[ORDER-EDIT] Updating totals of order {order_id} failed: {e}")
        raise PartialApplicationError('Failed to update order totals', applied_steps, 'order_totals')

    if written == 0:
        current_version = session.query(Order.version).filter(Order.id == order_id).scalar()
        logger.error(
            f"[ORDER-EDIT] Order {order_id} moved from version {loaded_version} to {current_version} "
            f"during the edit; header left untouched, applied={applied_steps}"
        )
        raise ConcurrentEditError(order_id, loaded_version, current_version, applied_steps)
    session.refresh(order)
    applied_steps.append('order_totals')

    # Step 7: Credit ledger (non-fatal)
    try:
        sync_credit_ledger(session, order, totals, reason)
    except SQLAlchemyError as e:
        session.rollback()
        ledger_sync_failures_total.labels(target='credit').inc()
        logger.error(f"[ORDER-EDIT] Credit ledger sync failed for order {order_id}: {e}")

    # Step 8: Invoice (non-fatal)
    try:
        resync_invoice(session, order_id, restaurant_id, totals)
    except (SQLAlchemyError, NotFoundError) as e:
        session.rollback()
        ledger_sync_failures_total.labels(target='invoice').inc()
        logger.error(f"[ORDER-EDIT] Invoice sync failed for order {order_id}, invoice is stale: {e}")

    logger.info(
        f"[ORDER-EDIT] Order {order_id} edited: +{len(plan['added'])} added, "
        f"{len(plan['increased'])} increased, {len(plan['removed_partial'])} decreased, "
        f"{len(plan['removed_full'])} removed; total {totals['total_inc_tax']}"
    )

    # Step 9: Respond with the KOT delta
    kot_items = plan['added'] + plan['increased']
    dispatch_order_event(ORDER_CHANGED, restaurant_id, order_id, kot_items)

    return {
        'order_id': order.id,
        'order_number': order.order_number,
        'order_for_print': {
            'id': order.id,
            'restaurant_id': restaurant_id,
            'order_type': order.order_type.value if order.order_type else None,
            'table_number': order.table_number or None,
            'customer_name': order.customer_name or '',
            'customer_phone': order.customer_phone or '',
            'subtotal_ex_tax': totals['subtotal_ex_tax'],
            'total_tax': totals['total_tax'],
            'total_inc_tax': totals['total_inc_tax'],
            'payment_status': order.payment_status.value if order.payment_status else 'pending',
            'status': OrderStatus.NEW.value,
            'version': order.version,
            'created_at': (order.updated_at or order.created_at).isoformat() if (order.updated_at or order.created_at) else None,
            # KOT uses only added/increased quantities
            'items': kot_items,
            'removed_items': plan['removed_full'] + plan['removed_partial'],
            'changed_items': kot_items,
            'change_history': plan['changes'],
            'is_edited': True,
            'edit_reason': reason,
        },
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _normalize_lines(lines: list) -> List[Dict[str, Any]]:
    """Drop empty and non-positive lines, parse numbers."""
    normalized = []
    for raw in lines:
        if not isinstance(raw, dict):
            continue
        if raw.get('quantity') in (None, ''):
            continue
        if not raw.get('menu_item_id') and not raw.get('name'):
            continue

        try:
            quantity = parse_quantity(raw.get('quantity'))
            price = parse_money(raw.get('price')) if raw.get('price') not in (None, '') else None
            menu_item_id = parse_id(raw['menu_item_id']) if raw.get('menu_item_id') not in (None, '') else None
        except (TypeError, ValueError) as e:
            raise ValidationError(f'Invalid line "{raw.get("name") or raw.get("menu_item_id")}": {e}')

        if quantity <= 0:
            continue

        normalized.append({
            'menu_item_id': menu_item_id,
            'name': (raw.get('name') or '').strip() or None,
            'price': price,
            'quantity': quantity,
            'hsn': raw.get('hsn') or None,
        })
    return normalized


def _resolve_lines(desired_lines: List[Dict[str, Any]], current_lines: List[OrderLine]) -> Dict[int, Dict[str, Any]]:
    """
    Key desired lines by menu_item_id.

    Lines without an id are matched by case-insensitive exact name against
    the order's own lines only; unresolved lines are dropped. Repeated ids
    are merged by summing quantities.
    """
    by_name = {}
    for line in current_lines:
        if line.menu_item_id and line.item_name:
            by_name.setdefault(line.item_name.strip().lower(), line.menu_item_id)

    desired: Dict[int, Dict[str, Any]] = {}
    for line in desired_lines:
        menu_item_id = line['menu_item_id']
        if menu_item_id is None:
            menu_item_id = by_name.get((line['name'] or '').lower())
            if menu_item_id is None:
                logger.warning(f"[ORDER-EDIT] Dropping unresolved line '{line['name']}'")
                continue

        if menu_item_id in desired:
            desired[menu_item_id]['quantity'] += line['quantity']
        else:
            desired[menu_item_id] = dict(line, menu_item_id=menu_item_id)
    return desired


def _fill_missing_fields(desired, current, menu_items) -> None:
    """Lines sent without a name or price keep the ordered values, else the menu item's."""
    for menu_item_id, want in desired.items():
        if not want['name']:
            if menu_item_id in current:
                want['name'] = current[menu_item_id].item_name
            elif menu_item_id in menu_items:
                want['name'] = menu_items[menu_item_id].name
            else:
                want['name'] = 'Item'
        if want['hsn'] is None:
            if menu_item_id in current:
                want['hsn'] = current[menu_item_id].hsn
            elif menu_item_id in menu_items:
                want['hsn'] = menu_items[menu_item_id].hsn
        if want['price'] is not None:
            continue
        if menu_item_id in current:
            want['price'] = parse_money(current[menu_item_id].price)
        elif menu_item_id in menu_items:
            want['price'] = parse_money(menu_items[menu_item_id].price)
        else:
            want['price'] = ZERO


def _diff(current: Dict[int, OrderLine], desired: Dict[int, Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Classify every menu item of the edit."""
    plan = {
        'added': [],
        'increased': [],
        'removed_partial': [],
        'removed_full': [],
        'touched': [],   # same quantity, row fields changed
        'changes': [],   # full change history
    }

    for menu_item_id, cur in current.items():
        if menu_item_id not in desired:
            entry = _print_entry(menu_item_id, cur.item_name, cur.quantity, cur.price, cur.hsn,
                                 REMOVED_FULL, cur.quantity, 0)
            plan['removed_full'].append(entry)
            plan['changes'].append(entry)

    for menu_item_id, want in desired.items():
        cur = current.get(menu_item_id)

        if cur is None:
            entry = _print_entry(menu_item_id, want['name'], want['quantity'], want['price'], want['hsn'],
                                 ADDED_FULL, 0, want['quantity'])
            plan['added'].append(entry)
            plan['changes'].append(entry)
            continue

        delta = want['quantity'] - cur.quantity
        if delta > 0:
            entry = _print_entry(menu_item_id, want['name'], delta, want['price'], want['hsn'],
                                 INCREASED, cur.quantity, want['quantity'])
            plan['increased'].append(entry)
            plan['changes'].append(entry)
        elif delta < 0:
            entry = _print_entry(menu_item_id, want['name'], -delta, want['price'], want['hsn'],
                                 REMOVED_PARTIAL, cur.quantity, want['quantity'])
            plan['removed_partial'].append(entry)
            plan['changes'].append(entry)
        elif _row_changed(cur, want):
            plan['touched'].append({'menu_item_id': menu_item_id})

    return plan


def _row_changed(cur: OrderLine, want: Dict[str, Any]) -> bool:
    return (
        parse_money(cur.price) != want['price']
        or (cur.item_name or '') != want['name']
        or (cur.hsn or None) != want['hsn']
    )


def _print_entry(menu_item_id, name, quantity, price, hsn, action, old_qty, new_qty) -> Dict[str, Any]:
    return {
        'menu_item_id': menu_item_id,
        'name': name,
        'quantity': quantity,
        'price': parse_money(price),
        'hsn': hsn,
        'action': action,
        'old_qty': old_qty,
        'new_qty': new_qty,
    }


def _move_stock(session, mover, menu_item_id, restaurant_id, quantity, order_id, table_number) -> None:
    """Stock moves are best-effort; a failed read is logged, not raised."""
    try:
        mover(session, menu_item_id, restaurant_id, quantity, table_number=table_number)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(
            f"[ORDER-EDIT] Stock {mover.__name__} of {quantity} x item {menu_item_id} "
            f"failed for order {order_id}: {e}"
        )


def _persist_lines(session, order_id, plan, current, desired, menu_items, policy, applied_steps) -> None:
    """Insert, update and delete order lines; each batch is its own write."""
    # Inserts
    if plan['added']:
        try:
            for entry in plan['added']:
                want = desired[entry['menu_item_id']]
                line = OrderLine(order_id=order_id, menu_item_id=entry['menu_item_id'])
                _apply_desired(line, want, menu_items.get(entry['menu_item_id']), policy)
                session.add(line)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[ORDER-EDIT] Inserting lines of order {order_id} failed: {e}")
            raise PartialApplicationError('Failed to insert order items', applied_steps, 'insert_lines')
        applied_steps.append('insert_lines')

    # Updates (quantity changes and same-quantity field changes)
    update_ids = [e['menu_item_id'] for e in plan['increased'] + plan['removed_partial'] + plan['touched']]
    if update_ids:
        try:
            for menu_item_id in update_ids:
                _apply_desired(current[menu_item_id], desired[menu_item_id], menu_items.get(menu_item_id), policy)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[ORDER-EDIT] Updating lines of order {order_id} failed: {e}")
            raise PartialApplicationError('Failed to update order items', applied_steps, 'update_lines')
        applied_steps.append('update_lines')

    # Deletes
    if plan['removed_full']:
        removed_ids = [current[e['menu_item_id']].id for e in plan['removed_full']]
        try:
            _delete_lines(session, removed_ids)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[ORDER-EDIT] Deleting lines of order {order_id} failed: {e}")
            raise PartialApplicationError('Failed to delete order items', applied_steps, 'delete_lines')
        applied_steps.append('delete_lines')


def _apply_desired(line: OrderLine, want: Dict[str, Any], menu_item, policy) -> None:
    """Copy desired values onto a line and refresh its unit tax snapshot."""
    line.item_name = want['name']
    line.quantity = want['quantity']
    line.price = want['price']
    line.hsn = want['hsn']
    line.is_packaged_good, _ = item_tax_flags(menu_item, line)

    tax = compute_line_for_order_line(line, menu_item, policy)
    line.unit_price_ex_tax = tax['unit_ex']
    line.unit_price_inc_tax = tax['unit_inc']
    line.unit_tax_amount = tax['unit_tax']
    line.tax_rate = tax['effective_rate']


def _delete_lines(session, line_ids: List[int]) -> None:
    session.query(OrderLine).filter(
        OrderLine.id.in_(line_ids)
    ).delete(synchronize_session=False)
