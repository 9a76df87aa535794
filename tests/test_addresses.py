import json

from lawlaw.extensions import db
from lawlaw.models import Address, Order

HOME = {
    'full_name': 'Juan Dela Cruz',
    'phone_number': '0917-123-4567',
    'region': 'NCR',
    'province': 'Metro Manila',
    'city': 'Manila',
    'barangay': 'Ermita',
    'street_address': '123 Rizal St',
    'postal_code': '1000',
}
OFFICE = dict(
    HOME,
    city='Makati',
    barangay='Poblacion',
    street_address='5 Ayala Ave',
    postal_code='1210',
    landmark='Near the mall',
)


def add(client, body):
    return client.post('/api/addresses', json=body)


def test_first_address_becomes_default(client, login, buyer):
    login(buyer)
    response = add(client, HOME)
    assert response.status_code == 201
    body = response.get_json()['address']
    assert body['is_default'] is True
    assert body['phone_number'] == '09171234567'
    assert body['landmark'] is None

    body = add(client, OFFICE).get_json()['address']
    assert body['is_default'] is False
    assert body['landmark'] == 'Near the mall'

    items = client.get('/api/addresses').get_json()['items']
    assert [a['city'] for a in items] == ['Manila', 'Makati']


def test_address_validation(client, login, buyer):
    login(buyer)
    assert add(client, dict(HOME, phone_number='12345')).status_code == 400
    assert add(client, dict(HOME, postal_code='10000')).status_code == 400
    assert add(client, dict(HOME, city='  ')).status_code == 400
    assert add(client, dict(HOME, is_default='yes')).status_code == 400
    missing = {k: v for k, v in HOME.items() if k != 'barangay'}
    response = add(client, missing)
    assert response.status_code == 400
    assert response.get_json()['error'] == \
        'All required fields must be filled'
    assert Address.query.count() == 0


def test_set_default_moves_the_flag(client, login, buyer):
    login(buyer)
    home_id = add(client, HOME).get_json()['address']['id']
    office_id = add(client, OFFICE).get_json()['address']['id']

    response = client.post(f'/api/addresses/{office_id}/set-default')
    assert response.status_code == 200
    assert db.session.get(Address, office_id).is_default is True
    assert db.session.get(Address, home_id).is_default is False

    add(client, dict(HOME, city='Quezon City', is_default=True))
    assert Address.query.filter_by(
        user_id=buyer.id, is_default=True).count() == 1


def test_update_address(client, login, buyer):
    login(buyer)
    address_id = add(client, HOME).get_json()['address']['id']
    url = f'/api/addresses/{address_id}'

    response = client.patch(url, json={'city': 'Pasay'})
    assert response.status_code == 200
    assert response.get_json()['address']['city'] == 'Pasay'
    assert response.get_json()['address']['barangay'] == 'Ermita'

    assert client.put(url, json={'city': 'Pasay'}).status_code == 400
    assert client.put(url, json=OFFICE).get_json()['address']['city'] == \
        'Makati'


def test_deleting_default_promotes_newest(client, login, buyer):
    login(buyer)
    home_id = add(client, HOME).get_json()['address']['id']
    add(client, OFFICE)
    newest_id = add(client, dict(HOME, city='Taguig')).get_json()[
        'address']['id']

    assert client.delete(f'/api/addresses/{home_id}').status_code == 200

    assert db.session.get(Address, home_id) is None
    defaults = Address.query.filter_by(user_id=buyer.id, is_default=True)
    assert [a.id for a in defaults] == [newest_id]


def test_other_users_cannot_touch_address(client, login, buyer, other_buyer,
                                          admin):
    login(buyer)
    address_id = add(client, HOME).get_json()['address']['id']
    url = f'/api/addresses/{address_id}'

    login(other_buyer)
    assert client.get(url).status_code == 403
    assert client.patch(url, json={'city': 'Cebu'}).status_code == 403
    assert client.delete(url).status_code == 403
    assert client.get('/api/addresses').get_json()['items'] == []

    login(admin)
    assert client.get(url).status_code == 200


def test_checkout_uses_saved_address(client, login, buyer, product):
    login(buyer)
    add(client, HOME)
    office_id = add(client, OFFICE).get_json()['address']['id']
    client.post('/api/cart/items', json={'product_id': product.id})

    response = client.post('/api/checkout', json={
        'payment_method': 'cod',
        'address_id': office_id,
    })
    assert response.status_code == 201
    order = db.session.get(Order, response.get_json()['order']['id'])
    shipping = json.loads(order.shipping_address)
    assert shipping['city'] == 'Makati'
    assert shipping['landmark'] == 'Near the mall'
    assert order.billing_address == order.shipping_address

    # The order keeps its copy when the saved address changes
    client.patch(f'/api/addresses/{office_id}', json={'city': 'Pasig'})
    db.session.expire_all()
    assert json.loads(
        db.session.get(Order, order.id).shipping_address)['city'] == 'Makati'


def test_checkout_falls_back_to_default_address(client, login, buyer,
                                                product):
    login(buyer)
    add(client, HOME)
    client.post('/api/cart/items', json={'product_id': product.id})

    response = client.post('/api/checkout', json={'payment_method': 'cod'})
    assert response.status_code == 201
    order = db.session.get(Order, response.get_json()['order']['id'])
    assert json.loads(order.shipping_address)['city'] == 'Manila'


def test_checkout_rejects_foreign_address(client, login, buyer, other_buyer,
                                          product):
    login(other_buyer)
    foreign_id = add(client, HOME).get_json()['address']['id']

    login(buyer)
    client.post('/api/cart/items', json={'product_id': product.id})
    response = client.post('/api/checkout', json={
        'payment_method': 'cod',
        'address_id': foreign_id,
    })
    assert response.status_code == 404
    assert client.post('/api/checkout', json={
        'payment_method': 'cod',
        'address_id': 'home',
    }).status_code == 400
    assert Order.query.count() == 0
