import pytest

from lawlaw.services.chat_state import ConversationState


def msg(id, content='hi', conversation_id=1, sender_id=2):
    return {'id': id, 'conversation_id': conversation_id,
            'sender_id': sender_id, 'content': content}


def new_message(data):
    return {'event': 'new-message', 'data': data}


def test_relayed_duplicate_is_ignored():
    state = ConversationState(1, [msg(1)])
    assert state.apply_event(new_message(msg(1))) is False
    assert state.apply_event(new_message(msg(2))) is True
    assert [m['id'] for m in state.messages] == [1, 2]


def test_other_conversation_is_ignored():
    state = ConversationState(1)
    assert state.apply_event(new_message(msg(5, conversation_id=9))) is False
    assert len(state) == 0


def test_confirm_replaces_entry_at_index():
    state = ConversationState(1, [msg(1)])
    first = state.add_optimistic('same text', sender_id=2)
    second = state.add_optimistic('same text', sender_id=2)

    state.confirm(second, msg(11, 'same text'))
    state.confirm(first, msg(10, 'same text'))

    assert [m['id'] for m in state.messages] == [1, 10, 11]
    assert not any(m['pending'] for m in state.messages)


def test_confirm_after_relay_echo_keeps_single_copy():
    state = ConversationState(1)
    index = state.add_optimistic('hello', sender_id=2)
    state.apply_event(new_message(msg(7, 'hello')))

    assert state.confirm(index, msg(7, 'hello')) is None
    assert [m['id'] for m in state.messages] == [7]


def test_fail_removes_entry_and_records_error():
    state = ConversationState(1, [msg(1)])
    index = state.add_optimistic('lost', sender_id=2)

    state.fail(index, 'network down')

    assert [m['id'] for m in state.messages] == [1]
    assert state.errors == ['network down']


def test_confirm_requires_pending_entry():
    state = ConversationState(1, [msg(1)])
    with pytest.raises(LookupError):
        state.confirm(0, msg(2))
    with pytest.raises(LookupError):
        state.fail(5, 'nope')


def test_message_deleted_event():
    state = ConversationState(1, [msg(1), msg(2)])
    changed = state.apply_event({
        'event': 'message-deleted',
        'data': {'id': 1, 'conversation_id': 1}})
    assert changed is True
    assert [m['id'] for m in state.messages] == [2]


def test_second_confirm_after_relay_echo_of_first():
    state = ConversationState(1)
    first = state.add_optimistic('a', sender_id=2)
    second = state.add_optimistic('b', sender_id=2)
    state.apply_event(new_message(msg(10, 'a')))

    assert state.confirm(first, msg(10, 'a')) is None
    confirmed = state.confirm(second, msg(11, 'b'))

    assert confirmed['id'] == 11
    assert sorted(m['id'] for m in state.messages) == [10, 11]
    assert not any(m['pending'] for m in state.messages)


def test_confirm_after_earlier_message_deleted():
    state = ConversationState(1, [msg(1), msg(2)])
    index = state.add_optimistic('new', sender_id=2)
    state.apply_event({
        'event': 'message-deleted',
        'data': {'id': 1, 'conversation_id': 1}})

    state.confirm(index, msg(12, 'new'))

    assert [m['id'] for m in state.messages] == [2, 12]


def test_fail_then_confirm_later_entry():
    state = ConversationState(1, [msg(1)])
    first = state.add_optimistic('lost', sender_id=2)
    second = state.add_optimistic('kept', sender_id=2)

    state.fail(first, 'timeout')
    state.confirm(second, msg(5, 'kept'))

    assert [m['id'] for m in state.messages] == [1, 5]
    with pytest.raises(LookupError):
        state.confirm(first, msg(6, 'lost'))
