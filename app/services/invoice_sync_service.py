"""
Invoice sync service - keeps an order's invoice a mirror of its lines.

Invoice items are never patched: every sync deletes all items of the
invoice and rebuilds them from the order's current lines, recomputing each
line's tax breakdown from what is persisted. Invoice creation itself is
handled elsewhere; an order without an invoice is left alone.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.models import (
    Order, OrderLine, OrderStatus, PaymentStatus, Invoice, InvoiceItem, InvoiceStatus
)
from app.exceptions import NotFoundError, PersistenceError
from app.services.tax_service import (
    compute_order_totals, aggregate_totals
)
from app.services.credit_ledger_service import append_adjustment
from app.utils.number_format import to_money, ZERO

logger = logging.getLogger(__name__)


def get_invoice_for_order(session, order_id: str, restaurant_id: int) -> Optional[Invoice]:
    """Invoice of an order (restaurant-scoped), or None."""
    return session.query(Invoice).filter(
        Invoice.order_id == order_id,
        Invoice.restaurant_id == restaurant_id
    ).first()


def resync_invoice(session, order_id: str, restaurant_id: int, totals: Optional[Dict[str, Decimal]] = None) -> Optional[Invoice]:
    """
    Rebuild an order's invoice items from its current lines (delete-all, insert-all).

    Steps:
    1. Load invoice (no invoice -> no-op)
    2. Re-read order lines and recompute each line's tax independently
    3. Update invoice header totals
    4. Delete every invoice item
    5. Insert fresh items numbered from 1

    Args:
        session: SQLAlchemy session
        order_id: Order ID
        restaurant_id: Restaurant ID (REQUIRED for multi-tenant enforcement)
        totals: Order totals already recomputed by the caller; header totals
            fall back to the sum of the rebuilt lines when omitted

    Returns:
        The synced invoice, or None when the order has no invoice

    Raises:
        NotFoundError: If the order does not exist
        SQLAlchemyError: If a write fails
    """
    invoice = get_invoice_for_order(session, order_id, restaurant_id)
    if not invoice:
        logger.debug(f"[INVOICE-SYNC] Order {order_id} has no invoice, nothing to sync")
        return None

    order = session.query(Order).filter(
        Order.id == order_id,
        Order.restaurant_id == restaurant_id
    ).first()
    if not order:
        raise NotFoundError(f'Order {order_id} not found')

    # Step 2: Recompute every persisted line
    lines = session.query(OrderLine).filter(
        OrderLine.order_id == order_id
    ).order_by(OrderLine.id).all()
    _, breakdown = compute_order_totals(session, order, lines)

    if totals is None:
        totals = aggregate_totals(result for _, result in breakdown)

    invoice_id = invoice.id

    try:
        # Step 3: Header totals
        invoice.subtotal_ex_tax = totals['subtotal_ex_tax']
        invoice.total_tax = totals['total_tax']
        invoice.total_inc_tax = totals['total_inc_tax']

        # Step 4: Delete all existing items
        session.query(InvoiceItem).filter(
            InvoiceItem.invoice_id == invoice_id
        ).delete(synchronize_session=False)

        # Step 5: Insert fresh items
        for line_no, (line, result) in enumerate(breakdown, start=1):
            session.add(_build_invoice_item(invoice_id, line_no, line, result))

        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    session.expire(invoice, ['items'])
    logger.info(f"[INVOICE-SYNC] Invoice {invoice_id} rebuilt with {len(breakdown)} item(s) for order {order_id}")
    return invoice


def resync_invoices(session, restaurant_id: Optional[int] = None, order_ids: Optional[Iterable[str]] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Repair job: rebuild invoices of many orders, one at a time.

    Void invoices are skipped. A failure on one order does not stop the run.

    Returns:
        {'success': [...], 'skipped': [...], 'failed': [...]}
    """
    results = {'success': [], 'skipped': [], 'failed': []}

    query = session.query(Invoice.order_id, Invoice.restaurant_id, Invoice.status)
    if restaurant_id is not None:
        query = query.filter(Invoice.restaurant_id == restaurant_id)
    order_ids = list(order_ids or [])
    if order_ids:
        query = query.filter(Invoice.order_id.in_(order_ids))

    targets = query.order_by(Invoice.id).all()
    found = {row.order_id for row in targets}
    for missing in order_ids:
        if missing not in found:
            results['skipped'].append({'order_id': missing, 'reason': 'No existing invoice'})

    for order_id, inv_restaurant_id, status in targets:
        if status == InvoiceStatus.VOID:
            results['skipped'].append({'order_id': order_id, 'reason': 'Invoice is void'})
            continue
        try:
            invoice = resync_invoice(session, order_id, inv_restaurant_id)
            results['success'].append({'order_id': order_id, 'invoice_id': invoice.id})
        except (SQLAlchemyError, NotFoundError) as e:
            session.rollback()
            logger.error(f"[INVOICE-SYNC] Repair failed for order {order_id}: {e}")
            results['failed'].append({'order_id': order_id, 'error': str(e)})

    logger.info(
        f"[INVOICE-SYNC] Repair finished: {len(results['success'])} rebuilt, "
        f"{len(results['skipped'])} skipped, {len(results['failed'])} failed"
    )
    return results


def void_invoice(session, invoice_id: int, restaurant_id: int, reason: str = None) -> Dict[str, Any]:
    """
    Void an invoice and cancel its order (restaurant-scoped).

    Credit orders get a signed ADJUSTMENT entry reversing the order total;
    this path appends to the ledger instead of correcting the CREDIT row.

    Returns:
        dict with ok, already_voided, invoice_id, order_id

    Raises:
        NotFoundError: If the invoice does not exist
        PersistenceError: If the invoice or order update fails
    """
    invoice = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.restaurant_id == restaurant_id
    ).first()

    if not invoice:
        raise NotFoundError('Invoice not found')

    if invoice.status == InvoiceStatus.VOID:
        return {'ok': True, 'already_voided': True, 'invoice_id': invoice.id, 'order_id': invoice.order_id}

    order_id = invoice.order_id

    # Step 1: Mark invoice void
    try:
        invoice.status = InvoiceStatus.VOID
        invoice.is_open = False
        invoice.regeneration_reason = f'void: {reason}' if reason else 'void'
        invoice.closed_date = datetime.now()
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[INVOICE-SYNC] Failed to void invoice {invoice_id}: {e}")
        raise PersistenceError('Failed to void invoice')

    # Step 2: Cancel linked order
    order = session.query(Order).filter(
        Order.id == order_id,
        Order.restaurant_id == restaurant_id
    ).first()

    if order and order.status != OrderStatus.CANCELLED:
        try:
            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.CANCELLED
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[INVOICE-SYNC] Invoice {invoice_id} voided but order {order_id} not cancelled: {e}")
            raise PersistenceError('Invoice voided but failed to cancel order')

        # Step 3: Reverse credit (append-only)
        total = to_money(order.total_inc_tax)
        if total > ZERO:
            try:
                append_adjustment(session, order, -total, reason or f'Invoice {invoice.invoice_no or invoice_id} voided')
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"[INVOICE-SYNC] Credit reversal failed for order {order_id}: {e}")

    return {'ok': True, 'already_voided': False, 'invoice_id': invoice_id, 'order_id': order_id}


def _build_invoice_item(invoice_id: int, line_no: int, line: OrderLine, result: Dict[str, Any]) -> InvoiceItem:
    """Invoice item from a persisted order line and its tax breakdown."""
    qty = int(line.quantity)
    line_ex = result['line_ex']
    unit_ex = to_money(line_ex / Decimal(qty)) if qty > 0 else ZERO

    return InvoiceItem(
        invoice_id=invoice_id,
        line_no=line_no,
        item_name=line.item_name,
        hsn=line.hsn,
        qty=qty,
        unit_price=to_money(line.price),
        unit_rate_ex_tax=unit_ex,
        tax_rate=to_money(result['effective_rate']),
        tax_amount=result['tax'],
        line_total_ex_tax=line_ex,
        line_total_inc_tax=result['line_inc'],
        cess_rate=ZERO,
        cess_amount=ZERO
    )
