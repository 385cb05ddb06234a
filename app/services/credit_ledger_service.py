"""
Credit ledger service - keeps credit sales in the customer ledger.

An order sold on credit owns exactly one ledger row of type CREDIT, keyed by
(restaurant_id, order_id). Editing the order corrects that row in place so
the outstanding balance always reflects the order's current total.
Other entries (payments, void adjustments) are append-only.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite

from app.models import Order, CreditTransaction, CreditTransactionType, CREDIT_ROW_CLAUSE
from app.utils.number_format import to_money, ZERO

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


def sync_credit_ledger(session, order: Order, totals: Dict[str, Decimal], reason: str = None) -> bool:
    """
    Upsert the order's CREDIT ledger row with its current total.

    No-op unless the order is a credit sale with a linked credit customer
    and a positive total.

    Args:
        session: SQLAlchemy session
        order: Order (already carrying its current state)
        totals: Recomputed totals (total_inc_tax is used)
        reason: Free text stored in the description

    Returns:
        True if a row was written, False for no-op

    Raises:
        SQLAlchemyError: if the write fails (callers decide whether it is fatal)
    """
    if not order.is_credit_sale:
        return False
    if not order.credit_customer_id:
        logger.warning(f"[CREDIT] Credit order {order.id} has no credit customer, ledger not synced")
        return False

    amount = to_money(totals.get('total_inc_tax') if totals else None)
    if amount <= 0:
        return False

    description = f'Order edited: {reason}' if reason else 'Order placed on credit'
    values = {
        'restaurant_id': order.restaurant_id,
        'credit_customer_id': order.credit_customer_id,
        'order_id': order.id,
        'transaction_type': CreditTransactionType.CREDIT,
        'amount': amount,
        'description': description,
        'notes': f'Order total: ₹{amount}',
        'payment_method': None,
        'transaction_date': datetime.now(),
    }

    dialect = session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)

    if insert is not None:
        stmt = insert(CreditTransaction).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=['restaurant_id', 'order_id'],
            index_where=CREDIT_ROW_CLAUSE,
            set_={
                'credit_customer_id': stmt.excluded.credit_customer_id,
                'amount': stmt.excluded.amount,
                'description': stmt.excluded.description,
                'notes': stmt.excluded.notes,
                'transaction_date': stmt.excluded.transaction_date,
            }
        )
        session.execute(stmt)
    else:
        _select_then_write(session, values)

    session.commit()
    logger.info(f"[CREDIT] Ledger row for order {order.id} set to {amount}")
    return True


def append_adjustment(session, order: Order, amount, reason: str = None) -> Optional[CreditTransaction]:
    """
    Append a signed ADJUSTMENT entry for an order (append-only, never upserted).

    Used by the invoice void path; amount is negative to reverse a credit sale.
    """
    if not order.is_credit_sale or not order.credit_customer_id:
        return None

    amount = to_money(amount)
    if amount == 0:
        return None

    entry = CreditTransaction(
        restaurant_id=order.restaurant_id,
        credit_customer_id=order.credit_customer_id,
        order_id=order.id,
        transaction_type=CreditTransactionType.ADJUSTMENT,
        amount=amount,
        description=f'Adjustment: {reason}' if reason else 'Adjustment',
        notes=f'Order {order.order_number} adjusted by ₹{amount}',
        transaction_date=datetime.now()
    )
    session.add(entry)
    session.commit()
    logger.info(f"[CREDIT] Adjustment {amount} appended for order {order.id}")
    return entry


def outstanding_balance(session, restaurant_id: int, credit_customer_id: int) -> Decimal:
    """Credit sales minus payments plus signed adjustments."""
    rows = session.query(
        CreditTransaction.transaction_type,
        func.coalesce(func.sum(CreditTransaction.amount), 0)
    ).filter(
        CreditTransaction.restaurant_id == restaurant_id,
        CreditTransaction.credit_customer_id == credit_customer_id
    ).group_by(CreditTransaction.transaction_type).all()

    balance = ZERO
    for kind, total in rows:
        total = Decimal(str(total))
        if kind == CreditTransactionType.PAYMENT:
            balance -= total
        else:
            balance += total
    return to_money(balance)


def _select_then_write(session, values: dict) -> None:
    """Fallback for backends without ON CONFLICT support."""
    existing = session.query(CreditTransaction).filter(
        CreditTransaction.restaurant_id == values['restaurant_id'],
        CreditTransaction.order_id == values['order_id'],
        CreditTransaction.transaction_type == CreditTransactionType.CREDIT
    ).with_for_update().first()

    if existing:
        existing.credit_customer_id = values['credit_customer_id']
        existing.amount = values['amount']
        existing.description = values['description']
        existing.notes = values['notes']
        existing.transaction_date = values['transaction_date']
    else:
        session.add(CreditTransaction(**values))
