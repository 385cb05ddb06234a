import pytest
from decimal import Decimal
import os
import uuid

# Tests run against an in-memory SQLite database unless told otherwise
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.pop('NOTIFY_OWNER_URL', None)

from app import create_app
from app.database import get_session, create_schema, drop_schema
from app.models import (
    Restaurant, RestaurantProfile, MenuItem, Recipe, RecipeItem, Ingredient,
    Order, Invoice, InvoiceItem, InvoiceStatus,
    CreditCustomer
)
from app.services.order_service import create_order


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    app.config['NOTIFY_OWNER_URL'] = None
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session for each test."""
    with app.app_context():
        create_schema()
        session = get_session()
        yield session
        session.rollback()
        session.remove()
        drop_schema()


@pytest.fixture(scope='function')
def restaurant(session):
    """Restaurant with GST on, 5% base rate, exclusive service prices."""
    suffix = str(uuid.uuid4())[:8]
    restaurant = Restaurant(name=f'Test Restaurant {suffix}', active=True)
    session.add(restaurant)
    session.flush()

    session.add(RestaurantProfile(
        restaurant_id=restaurant.id,
        gst_enabled=True,
        default_tax_rate=Decimal('5'),
        prices_include_tax=False,
        features_inventory_enabled=True
    ))
    session.commit()
    return restaurant


@pytest.fixture(scope='function')
def other_restaurant(session):
    """Second restaurant for isolation tests."""
    restaurant = Restaurant(name='Other Restaurant', active=True)
    session.add(restaurant)
    session.commit()
    return restaurant


@pytest.fixture(scope='function')
def ingredients(session, restaurant):
    """Flour and cheese, 100 units each."""
    flour = Ingredient(restaurant_id=restaurant.id, name='Flour', unit='g',
                       current_stock=Decimal('100'), reorder_threshold=Decimal('10'))
    cheese = Ingredient(restaurant_id=restaurant.id, name='Cheese', unit='g',
                        current_stock=Decimal('100'))
    session.add_all([flour, cheese])
    session.commit()
    return {'flour': flour, 'cheese': cheese}


@pytest.fixture(scope='function')
def pizza(session, restaurant, ingredients):
    """Service item at 100.00 with a recipe: 2 flour + 1.5 cheese per unit."""
    item = MenuItem(restaurant_id=restaurant.id, name='Pizza', price=Decimal('100.00'),
                    is_packaged_good=False, hsn='996331', active=True)
    session.add(item)
    session.flush()

    recipe = Recipe(restaurant_id=restaurant.id, menu_item_id=item.id)
    session.add(recipe)
    session.flush()
    session.add_all([
        RecipeItem(recipe_id=recipe.id, ingredient_id=ingredients['flour'].id, quantity=Decimal('2')),
        RecipeItem(recipe_id=recipe.id, ingredient_id=ingredients['cheese'].id, quantity=Decimal('1.5')),
    ])
    session.commit()
    return item


@pytest.fixture(scope='function')
def pasta(session, restaurant, ingredients):
    """Service item at 80.00 with a recipe: 1 flour per unit."""
    item = MenuItem(restaurant_id=restaurant.id, name='Pasta', price=Decimal('80.00'),
                    is_packaged_good=False, active=True)
    session.add(item)
    session.flush()

    recipe = Recipe(restaurant_id=restaurant.id, menu_item_id=item.id)
    session.add(recipe)
    session.flush()
    session.add(RecipeItem(recipe_id=recipe.id, ingredient_id=ingredients['flour'].id, quantity=Decimal('1')))
    session.commit()
    return item


@pytest.fixture(scope='function')
def soda(session, restaurant):
    """Packaged good, MRP 118.00 at 18%."""
    item = MenuItem(restaurant_id=restaurant.id, name='Soda', price=Decimal('118.00'),
                    is_packaged_good=True, tax_rate=Decimal('18'), hsn='2202', active=True)
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def credit_customer(session, restaurant):
    """Credit customer of the test restaurant."""
    customer = CreditCustomer(restaurant_id=restaurant.id, name='Ravi', phone='9999999999', active=True)
    session.add(customer)
    session.commit()
    return customer


@pytest.fixture(scope='function')
def place_order(session, restaurant):
    """Factory: place an order through the service and return the Order."""
    def _place(lines, **extra):
        payload = dict(extra, restaurant_id=restaurant.id, lines=lines)
        result = create_order(payload, session)
        return session.query(Order).filter(Order.id == result['order_id']).one()
    return _place


@pytest.fixture(scope='function')
def issue_invoice(session):
    """Factory: invoice an order the way the billing collaborator does."""
    def _issue(order):
        invoice = Invoice(
            restaurant_id=order.restaurant_id,
            order_id=order.id,
            invoice_no=f'INV-{order.order_number}',
            status=InvoiceStatus.PAID,
            is_open=False,
            payment_method=order.payment_method.value,
            credit_customer_id=order.credit_customer_id,
            subtotal_ex_tax=order.subtotal_ex_tax,
            total_tax=order.total_tax,
            total_inc_tax=order.total_inc_tax
        )
        session.add(invoice)
        session.flush()
        for line_no, line in enumerate(order.lines, start=1):
            session.add(InvoiceItem(
                invoice_id=invoice.id,
                line_no=line_no,
                item_name=line.item_name,
                hsn=line.hsn,
                qty=line.quantity,
                unit_price=line.price,
                unit_rate_ex_tax=line.unit_price_ex_tax,
                tax_rate=line.tax_rate,
                tax_amount=line.unit_tax_amount * line.quantity,
                line_total_ex_tax=line.unit_price_ex_tax * line.quantity,
                line_total_inc_tax=line.unit_price_inc_tax * line.quantity
            ))
        session.commit()
        return invoice
    return _issue
