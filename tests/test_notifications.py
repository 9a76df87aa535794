from lawlaw.models import Notification, NotificationType, OrderStatus


def add(db_session, user, count):
    for i in range(count):
        db_session.add(Notification(
            user_id=user.id,
            title=f'Note {i}',
            message='Something happened',
            type=NotificationType.ORDER_UPDATE))
    db_session.commit()


def test_lists_latest_twenty_with_unread_count(client, login, db_session,
                                               buyer):
    add(db_session, buyer, 25)
    login(buyer)
    body = client.get('/api/notifications').get_json()
    assert len(body['items']) == 20
    assert body['unread_count'] == 25


def test_mark_one_and_all_read(client, login, db_session, buyer):
    add(db_session, buyer, 3)
    login(buyer)
    first_id = client.get('/api/notifications').get_json()['items'][0]['id']

    body = client.patch('/api/notifications', json={'id': first_id}).get_json()
    assert body['unread_count'] == 2

    body = client.patch('/api/notifications', json={'all': True}).get_json()
    assert body['updated'] == 2
    assert body['unread_count'] == 0

    assert client.patch('/api/notifications', json={}).status_code == 400


def test_cannot_mark_foreign_notification(client, login, db_session, buyer,
                                          other_buyer):
    add(db_session, other_buyer, 1)
    foreign = Notification.query.filter_by(user_id=other_buyer.id).one()
    login(buyer)
    assert client.patch(
        '/api/notifications', json={'id': foreign.id}).status_code == 404


def test_workflow_notifications_are_relayed(make_order, buyer, admin,
                                            relay):
    from lawlaw.services.order_workflow import set_order_status
    order = make_order(OrderStatus.PENDING)
    set_order_status(order, admin, 'processing')

    notes = Notification.query.filter_by(user_id=buyer.id).all()
    assert [n.message for n in notes] == [
        f'Your order #{order.id} is now processing.']
    assert relay.channels_for('notification') == {f'user-{buyer.id}'}
