"""
Integration tests for order placement.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch

import requests
from prometheus_client import REGISTRY
from sqlalchemy.exc import SQLAlchemyError

from app.models import Order, OrderLine, OrderStatus, PaymentMethod, CreditTransaction
from app.services.order_service import create_order
from app.exceptions import ValidationError, PersistenceError


class TestCreateOrder:
    """Happy paths."""

    def test_exclusive_service_item_totals(self, session, restaurant, pizza, ingredients):
        """2 x 100.00 at 5% exclusive -> 200.00 + 10.00 = 210.00."""
        result = create_order({
            'restaurant_id': restaurant.id,
            'table_number': 4,
            'order_type': 'dine-in',
            'lines': [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
        }, session)

        order = session.query(Order).filter_by(id=result['order_id']).one()
        assert result['order_number'] == order.id[:8].upper()
        assert order.subtotal_ex_tax == Decimal('200.00')
        assert order.total_tax == Decimal('10.00')
        assert order.total_inc_tax == Decimal('210.00')
        assert order.status == OrderStatus.NEW
        assert order.table_number == '4'
        assert order.gst_enabled is True
        assert order.prices_include_tax is False
        assert order.version == 1

        line = order.lines[0]
        assert line.item_name == 'Pizza'
        assert line.hsn == '996331'
        assert line.unit_price_ex_tax == Decimal('100.00')
        assert line.unit_price_inc_tax == Decimal('105.00')
        assert line.unit_tax_amount == Decimal('5.00')
        assert line.tax_rate == Decimal('5.00')

    def test_stock_is_deducted(self, session, place_order, pizza, ingredients):
        place_order([{'menu_item_id': pizza.id, 'quantity': 3, 'price': 100}])

        assert ingredients['flour'].current_stock == Decimal('94')
        assert ingredients['cheese'].current_stock == Decimal('95.5')

    def test_duplicate_lines_are_merged(self, session, place_order, pizza, ingredients):
        order = place_order([
            {'menu_item_id': pizza.id, 'quantity': 1, 'price': 100},
            {'id': pizza.id, 'quantity': 2, 'price': 100},
        ])

        assert len(order.lines) == 1
        assert order.lines[0].quantity == 3

    def test_missing_price_uses_menu_price(self, session, place_order, soda):
        order = place_order([{'menu_item_id': soda.id}])

        assert order.lines[0].quantity == 1
        assert order.lines[0].price == Decimal('118.00')
        assert order.total_tax == Decimal('18.00')

    def test_mixed_payment_within_tolerance(self, session, place_order, pizza):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
            payment_method='mixed',
            mixed_payment_details={'cash_amount': 110, 'online_amount': '100.00', 'online_method': 'upi'}
        )

        assert order.payment_method == PaymentMethod.MIXED
        assert order.mixed_payment_details['cash_amount'] == '110.00'
        assert order.mixed_payment_details['is_mixed'] is True

    def test_credit_sale_writes_ledger(self, session, place_order, pizza, credit_customer):
        order = place_order(
            [{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}],
            payment_method='credit', credit_customer_id=credit_customer.id
        )

        assert order.is_credit is True
        entries = session.query(CreditTransaction).filter_by(order_id=order.id).all()
        assert len(entries) == 1
        assert entries[0].amount == Decimal('105.00')

    def test_owner_is_notified(self, app, session, place_order, pizza, monkeypatch):
        monkeypatch.setitem(app.config, 'NOTIFY_OWNER_URL', 'http://notify.test/owner')

        with patch('app.services.notification_service.requests.post') as post:
            order = place_order([{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}])

        post.assert_called_once()
        body = post.call_args.kwargs['json']
        assert body['event'] == 'order_created'
        assert body['orderId'] == order.id
        assert body['orderItems'][0]['price'] == 100.0

    def test_notification_failure_does_not_fail_order(self, app, session, place_order, pizza, monkeypatch):
        monkeypatch.setitem(app.config, 'NOTIFY_OWNER_URL', 'http://notify.test/owner')
        before = REGISTRY.get_sample_value('notification_failures_total', {'event': 'order_created'}) or 0.0

        with patch('app.services.notification_service.requests.post',
                   side_effect=requests.ConnectionError('down')):
            order = place_order([{'menu_item_id': pizza.id, 'quantity': 1, 'price': 100}])

        assert order.total_inc_tax == Decimal('105.00')
        assert REGISTRY.get_sample_value('notification_failures_total', {'event': 'order_created'}) == before + 1


class TestCreateOrderValidation:
    """Rejected requests write nothing."""

    @pytest.mark.parametrize('lines', [[], None])
    def test_empty_order_rejected(self, session, restaurant, lines):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'lines': lines}, session)
        assert session.query(Order).count() == 0

    def test_unknown_menu_item_rejected(self, session, restaurant, pizza, other_restaurant):
        foreign = {'restaurant_id': other_restaurant.id, 'lines': [{'menu_item_id': pizza.id, 'quantity': 1}]}

        with pytest.raises(ValidationError):
            create_order(foreign, session)
        assert session.query(Order).count() == 0

    def test_non_positive_quantity_rejected(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'lines': [{'menu_item_id': pizza.id, 'quantity': 0}]}, session)

    def test_fractional_menu_item_id_rejected(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'lines': [{'menu_item_id': pizza.id + 0.9, 'quantity': 1}]}, session)
        assert session.query(Order).count() == 0

    def test_negative_price_rejected(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'lines': [{'menu_item_id': pizza.id, 'quantity': 1, 'price': -5}]}, session)

    def test_invalid_payment_method_rejected(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'payment_method': 'barter',
                          'lines': [{'menu_item_id': pizza.id, 'quantity': 1}]}, session)

    def test_credit_sale_requires_customer(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({'restaurant_id': restaurant.id, 'payment_method': 'credit',
                          'lines': [{'menu_item_id': pizza.id, 'quantity': 1}]}, session)
        assert session.query(Order).count() == 0

    def test_mixed_payment_mismatch_rejected(self, session, restaurant, pizza):
        with pytest.raises(ValidationError):
            create_order({
                'restaurant_id': restaurant.id,
                'payment_method': 'mixed',
                'mixed_payment_details': {'cash_amount': 100, 'online_amount': 100},
                'lines': [{'menu_item_id': pizza.id, 'quantity': 2, 'price': 100}],
            }, session)
        assert session.query(Order).count() == 0


class TestCreateOrderFailures:
    """Store failures after the first write."""

    def test_line_insert_failure_removes_order(self, session, restaurant, pizza, ingredients):
        with patch('app.services.order_service._build_order_line', side_effect=SQLAlchemyError('disk full')):
            with pytest.raises(PersistenceError) as exc:
                create_order({'restaurant_id': restaurant.id,
                              'lines': [{'menu_item_id': pizza.id, 'quantity': 1}]}, session)

        assert exc.value.status_code == 500
        assert session.query(Order).count() == 0
        assert session.query(OrderLine).count() == 0
        assert ingredients['flour'].current_stock == Decimal('100')
