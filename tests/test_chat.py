from lawlaw.models import Conversation, Message, Notification


def start(client, product, message='Is this still available?'):
    return client.post('/api/chat/conversations', json={
        'product_id': product.id,
        'message': message,
    })


def test_start_conversation_is_unique_per_product(client, login, buyer,
                                                  seller, product, relay):
    login(buyer)
    first = start(client, product)
    assert first.status_code == 201
    assert first.get_json()['created'] is True

    second = start(client, product, 'Hello again')
    assert second.status_code == 200
    assert second.get_json()['created'] is False
    assert first.get_json()['conversation']['id'] == \
        second.get_json()['conversation']['id']

    assert Conversation.query.count() == 1
    assert Notification.query.filter_by(user_id=seller.id).count() == 1
    assert len(relay.named('new-message')) == 4


def test_cannot_chat_about_own_product(client, login, seller, product):
    login(seller)
    assert start(client, product).status_code == 400


def test_post_message_relays_to_both_parties(client, login, buyer, seller,
                                             product, relay):
    login(buyer)
    conversation_id = start(client, product, None).get_json()[
        'conversation']['id']
    assert relay.named('new-message') == []

    login(seller)
    response = client.post('/api/chat/messages', json={
        'conversation_id': conversation_id,
        'content': 'Yes, 10 jars left',
    })
    assert response.status_code == 201
    message = response.get_json()['message']
    assert message['sender_id'] == seller.id

    events = relay.named('new-message')
    assert {channel for channel, _, _ in events} == {
        f'user-{buyer.id}', f'user-{seller.id}'}
    assert all(data['id'] == message['id'] for _, _, data in events)


def test_outsider_cannot_read_or_post(client, login, buyer, other_buyer,
                                      product):
    login(buyer)
    conversation_id = start(client, product).get_json()[
        'conversation']['id']

    login(other_buyer)
    assert client.get(
        f'/api/chat/messages?conversation_id={conversation_id}'
    ).status_code == 403
    assert client.post('/api/chat/messages', json={
        'conversation_id': conversation_id, 'content': 'hi'}
    ).status_code == 403


def test_empty_message_rejected(client, login, buyer, product):
    login(buyer)
    conversation_id = start(client, product).get_json()[
        'conversation']['id']
    response = client.post('/api/chat/messages', json={
        'conversation_id': conversation_id, 'content': '   '})
    assert response.status_code == 400


def test_list_messages_marks_peer_messages_read(client, login, buyer,
                                                seller, product):
    login(buyer)
    conversation_id = start(client, product).get_json()[
        'conversation']['id']

    login(seller)
    listing = client.get(
        f'/api/chat/conversations').get_json()['items']
    assert listing[0]['unread_count'] == 1

    body = client.get(
        f'/api/chat/messages?conversation_id={conversation_id}').get_json()
    assert [m['content'] for m in body['items']] == [
        'Is this still available?']
    assert Message.query.filter_by(is_read=False).count() == 0


def test_delete_message_by_sender_or_seller(client, login, buyer, seller,
                                            product, relay):
    login(buyer)
    body = start(client, product).get_json()
    conversation_id = body['conversation']['id']
    first_id = body['conversation']['last_message']['id']
    second_id = client.post('/api/chat/messages', json={
        'conversation_id': conversation_id, 'content': 'second'}
    ).get_json()['message']['id']

    response = client.delete(f'/api/chat/messages/{first_id}')
    assert response.status_code == 200

    login(seller)
    assert client.delete(
        f'/api/chat/messages/{second_id}').status_code == 200
    assert Message.query.count() == 0
    deleted = relay.named('message-deleted')
    assert {data['id'] for _, _, data in deleted} == {first_id, second_id}


def test_buyer_cannot_delete_seller_message(client, login, buyer, seller,
                                            product):
    login(buyer)
    conversation_id = start(client, product).get_json()[
        'conversation']['id']

    login(seller)
    seller_message = client.post('/api/chat/messages', json={
        'conversation_id': conversation_id, 'content': 'from seller'}
    ).get_json()['message']['id']

    login(buyer)
    assert client.delete(
        f'/api/chat/messages/{seller_message}').status_code == 403


def test_malformed_ids_are_rejected(client, login, buyer, product):
    login(buyer)
    for bad in ([product.id], {'id': product.id}, 'abc'):
        response = client.post('/api/chat/conversations', json={
            'product_id': bad,
            'message': 'Hi',
        })
        assert response.status_code == 400, bad

    conversation_id = start(client, product).get_json()['conversation']['id']
    for bad in ({'id': conversation_id}, [conversation_id], 1.5):
        response = client.post('/api/chat/messages', json={
            'conversation_id': bad,
            'content': 'Hello',
        })
        assert response.status_code == 400, bad
    assert Message.query.count() == 1
