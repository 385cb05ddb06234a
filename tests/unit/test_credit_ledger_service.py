"""
Unit tests for the credit ledger (one CREDIT row per credit order).
"""

from decimal import Decimal

from app.models import CreditTransaction, CreditTransactionType
from app.services.credit_ledger_service import sync_credit_ledger, append_adjustment, outstanding_balance


def _credit_rows(session, order_id):
    return session.query(CreditTransaction).filter(
        CreditTransaction.order_id == order_id,
        CreditTransaction.transaction_type == CreditTransactionType.CREDIT
    ).all()


class TestSyncCreditLedger:
    """Tests for the CREDIT row upsert."""

    def test_credit_order_creates_one_row(self, session, place_order, pizza, credit_customer):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
            payment_method='credit', credit_customer_id=credit_customer.id
        )

        rows = _credit_rows(session, order.id)
        assert len(rows) == 1
        assert rows[0].amount == Decimal('210.00')
        assert rows[0].credit_customer_id == credit_customer.id

    def test_repeated_sync_updates_in_place(self, session, place_order, pizza, credit_customer):
        """Syncing again never adds a second CREDIT row."""
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}],
            is_credit=True, credit_customer_id=credit_customer.id
        )

        assert sync_credit_ledger(session, order, {'total_inc_tax': Decimal('315.00')}, 'added two pizzas') is True
        assert sync_credit_ledger(session, order, {'total_inc_tax': Decimal('52.50')}, 'removed items') is True

        rows = _credit_rows(session, order.id)
        assert len(rows) == 1
        session.refresh(rows[0])
        assert rows[0].amount == Decimal('52.50')
        assert rows[0].description == 'Order edited: removed items'

    def test_non_credit_order_is_a_no_op(self, session, place_order, pizza):
        order = place_order([{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}])

        assert sync_credit_ledger(session, order, {'total_inc_tax': Decimal('105.00')}) is False
        assert session.query(CreditTransaction).count() == 0

    def test_zero_total_is_a_no_op(self, session, place_order, pizza, credit_customer):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}],
            payment_method='credit', credit_customer_id=credit_customer.id
        )

        assert sync_credit_ledger(session, order, {'total_inc_tax': Decimal('0')}) is False


class TestAdjustmentsAndBalance:
    """Tests for append-only entries and the balance."""

    def test_adjustment_is_appended_not_upserted(self, session, place_order, pizza, credit_customer):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
            payment_method='credit', credit_customer_id=credit_customer.id
        )

        append_adjustment(session, order, Decimal('-10.00'), 'goodwill')
        append_adjustment(session, order, Decimal('-5.00'), 'goodwill')

        entries = session.query(CreditTransaction).filter_by(order_id=order.id).all()
        assert len(entries) == 3
        assert len(_credit_rows(session, order.id)) == 1

    def test_outstanding_balance(self, session, restaurant, place_order, pizza, credit_customer):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
            payment_method='credit', credit_customer_id=credit_customer.id
        )
        session.add(CreditTransaction(
            restaurant_id=restaurant.id,
            credit_customer_id=credit_customer.id,
            transaction_type=CreditTransactionType.PAYMENT,
            amount=Decimal('100.00'),
            payment_method='cash'
        ))
        session.commit()
        append_adjustment(session, order, Decimal('-10.00'), 'discount')

        assert outstanding_balance(session, restaurant.id, credit_customer.id) == Decimal('100.00')
