from lawlaw.extensions import db
from lawlaw.models import (
    CartItem,
    Conversation,
    Message,
    Order,
    OrderStatus,
    TrackingHistoryEntry)

CHECKOUT_BODY = {
    'shipping_address': '123 Rizal St, Manila',
    'billing_address': '123 Rizal St, Manila',
    'payment_method': 'cod',
}


def test_add_to_cart_merges_quantities(client, login, buyer, product):
    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id,
                                         'quantity': 2})
    response = client.post('/api/cart/items', json={'product_id': product.id,
                                                    'quantity': 3})
    assert response.status_code == 200
    body = response.get_json()
    assert body['count'] == 5
    assert body['items'][0]['quantity'] == 5
    assert body['total'] == 900.0


def test_cart_rejects_over_stock(client, login, buyer, product):
    login(buyer)
    response = client.post(
        '/api/cart/items', json={'product_id': product.id, 'quantity': 11})
    assert response.status_code == 400


def test_seller_cannot_buy_own_product(client, login, seller, product):
    login(seller)
    response = client.post(
        '/api/cart/items', json={'product_id': product.id, 'quantity': 1})
    assert response.status_code == 400


def test_update_and_remove_cart_item(client, login, buyer, product):
    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id})

    response = client.patch(
        f'/api/cart/items/{product.id}', json={'quantity': 4})
    assert response.get_json()['count'] == 4

    assert client.patch(
        f'/api/cart/items/{product.id}', json={'quantity': 0}
    ).status_code == 400

    response = client.delete(f'/api/cart/items/{product.id}')
    assert response.get_json()['items'] == []


def test_checkout_creates_pending_order(client, login, buyer, seller,
                                        product, relay):
    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id,
                                         'quantity': 3})

    response = client.post('/api/checkout', json=CHECKOUT_BODY)

    assert response.status_code == 201
    body = response.get_json()['order']
    assert body['status'] == 'pending'
    assert body['total_amount'] == 540.0
    assert body['items'][0]['unit_price'] == 180.0

    db.session.expire_all()
    order = db.session.get(Order, body['id'])
    assert order.status == OrderStatus.PENDING
    assert product.stock == 7
    assert CartItem.query.filter_by(user_id=buyer.id).count() == 0
    assert TrackingHistoryEntry.query.filter_by(
        order_id=order.id).count() == 1

    conversation = Conversation.query.filter_by(
        seller_id=seller.id, buyer_id=buyer.id, product_id=product.id).one()
    greeting = Message.query.filter_by(
        conversation_id=conversation.id).one()
    assert greeting.sender_id == seller.id
    assert relay.channels_for('new-message') == {
        f'user-{buyer.id}', f'user-{seller.id}'}


def test_order_price_snapshot_survives_price_change(client, login, buyer,
                                                    product):
    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id})
    order_id = client.post(
        '/api/orders', json=CHECKOUT_BODY).get_json()['order']['id']

    product.price = 999
    db.session.commit()

    body = client.get(f'/api/orders/{order_id}').get_json()['order']
    assert body['items'][0]['unit_price'] == 180.0


def test_checkout_reuses_conversation(client, login, buyer, seller, product):
    login(buyer)
    for _ in range(2):
        client.post('/api/cart/items', json={'product_id': product.id})
        assert client.post(
            '/api/checkout', json=CHECKOUT_BODY).status_code == 201

    assert Conversation.query.filter_by(
        seller_id=seller.id, buyer_id=buyer.id).count() == 1


def test_checkout_validation(client, login, buyer, product):
    login(buyer)
    assert client.post('/api/checkout', json=CHECKOUT_BODY).status_code == 400

    client.post('/api/cart/items', json={'product_id': product.id})
    body = dict(CHECKOUT_BODY, payment_method='')
    response = client.post('/api/checkout', json=body)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'payment_method cannot be empty'


def test_checkout_fails_when_stock_ran_out(client, login, buyer, product):
    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id,
                                         'quantity': 5})
    product.stock = 2
    db.session.commit()

    response = client.post('/api/checkout', json=CHECKOUT_BODY)
    assert response.status_code == 400
    assert Order.query.count() == 0


def test_add_to_cart_rejects_malformed_product_id(client, login, buyer,
                                                  product):
    login(buyer)
    for bad in ([product.id], {'id': product.id}, True, 'abc', -1):
        response = client.post('/api/cart/items', json={'product_id': bad})
        assert response.status_code == 400, bad
        assert 'product_id' in response.get_json()['error']
    assert CartItem.query.count() == 0

    response = client.post('/api/cart/items',
                           json={'product_id': str(product.id)})
    assert response.status_code == 200
