"""
Pytest fixtures for Lawlaw Delights tests.

Each test gets a fresh application with an in-memory database and a
recording relay in place of Redis, so published events can be asserted.
"""

from decimal import Decimal

import pytest

from lawlaw import create_app
from lawlaw.config import TestConfig
from lawlaw.extensions import db
from lawlaw.models import (
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Recipe,
    User,
    UserRole)

PASSWORD = 'secret123'


class RecordingRelay:
    """Stands in for RelayClient and keeps every published event."""

    enabled = True
    channel_prefix = 'user-'

    def __init__(self):
        self.events = []

    def channel_for(self, user_id):
        return f'{self.channel_prefix}{user_id}'

    def publish(self, user_id, event, data):
        self.events.append((self.channel_for(user_id), event, data))
        return True

    def publish_many(self, user_ids, event, data):
        ids = list(dict.fromkeys(user_ids))
        for user_id in ids:
            self.publish(user_id, event, data)
        return len(ids)

    def named(self, event):
        return [e for e in self.events if e[1] == event]

    def channels_for(self, event):
        return {channel for channel, name, _ in self.events if name == event}


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)
    app.extensions['relay'] = RecordingRelay()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def relay(app):
    return app.extensions['relay']


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


def _make_user(email, role, name=None):
    user = User(email=email, name=name, role=role, email_verified=True)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def buyer(db_session):
    return _make_user('buyer@example.com', UserRole.BUYER, 'Juan')


@pytest.fixture(scope='function')
def other_buyer(db_session):
    return _make_user('other@example.com', UserRole.BUYER, 'Maria')


@pytest.fixture(scope='function')
def seller(db_session):
    return _make_user('seller@example.com', UserRole.SELLER, 'Aling Nena')


@pytest.fixture(scope='function')
def admin(db_session):
    return _make_user('admin@example.com', UserRole.ADMIN, 'Admin')


@pytest.fixture(scope='function')
def product(db_session, seller):
    product = Product(
        seller_id=seller.id,
        name='Ube Halaya',
        description='Purple yam jam',
        category='desserts',
        price=Decimal('180.00'),
        stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def recipe(db_session, buyer):
    recipe = Recipe(
        author_id=buyer.id,
        title='Chicken Adobo',
        description='Braised chicken',
    )
    recipe.ingredients = ['chicken', 'soy sauce', 'vinegar']
    recipe.instructions = ['Marinate', 'Simmer']
    db_session.add(recipe)
    db_session.commit()
    return recipe


@pytest.fixture(scope='function')
def make_order(db_session, buyer, product):
    """Create an order for ``buyer`` holding ``quantity`` of ``product``.

    Stock is decremented the way checkout does it.
    """
    def _make(status=OrderStatus.PENDING, quantity=2,
              approval_required=False):
        order = Order(
            buyer_id=buyer.id,
            total_amount=product.price * quantity,
            shipping_address='123 Rizal St, Manila',
            billing_address='123 Rizal St, Manila',
            payment_method='cod',
            status=status,
            admin_approval_required=approval_required,
        )
        db_session.add(order)
        db_session.flush()
        db_session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=product.price,
        ))
        product.stock -= quantity
        db_session.commit()
        return order
    return _make


@pytest.fixture(scope='function')
def login(client):
    def _login(user, password=PASSWORD):
        response = client.post('/api/auth/login', json={
            'email': user.email,
            'password': password,
        })
        assert response.status_code == 200, response.get_json()
        return response
    return _login
