"""Client-side conversation state fed by relay events.

This is the reducer a chat client runs: relayed events are merged by
message id, and sends are shown optimistically before the server confirms
them. Entries are plain dicts shaped like ``message_to_dict`` output;
optimistic entries carry ``pending=True`` and no ``id``.
"""
from lawlaw.services.relay_service import (
    EVENT_NEW_MESSAGE,
    EVENT_MESSAGE_DELETED)
from datetime import datetime
import itertools
import logging

logger = logging.getLogger(__name__)


class ConversationState:

    def __init__(self, conversation_id=None, messages=None):
        self.conversation_id = conversation_id
        self.messages = []
        self.errors = []
        self._temp_ids = itertools.count(1)
        # Handles returned by add_optimistic stay valid while other entries
        # are inserted or removed; they map to the entry's temp_id.
        self._slots = itertools.count()
        self._pending = {}
        for message in messages or []:
            self._append_confirmed(message)

    def __len__(self):
        return len(self.messages)

    def ids(self):
        return {m['id'] for m in self.messages if m.get('id') is not None}

    def _append_confirmed(self, message):
        if message.get('id') in self.ids():
            return False
        self.messages.append(dict(message, pending=False))
        next(self._slots)
        return True

    def _belongs_here(self, data):
        if self.conversation_id is None:
            return True
        return data.get('conversation_id') == self.conversation_id

    def apply_event(self, event) -> bool:
        """Merge one relayed event. Returns True if the state changed."""
        name = event.get('event')
        data = event.get('data') or {}
        if not self._belongs_here(data):
            return False

        if name == EVENT_NEW_MESSAGE:
            if data.get('id') is None:
                return False
            return self._append_confirmed(data)

        if name == EVENT_MESSAGE_DELETED:
            before = len(self.messages)
            self.messages = [
                m for m in self.messages if m.get('id') != data.get('id')]
            return len(self.messages) != before

        logger.debug("Ignoring relay event %s", name)
        return False

    def add_optimistic(self, content, sender_id) -> int:
        """Insert a temporary entry and return a handle for it.

        The handle equals the entry's index when nothing was removed in
        between, and keeps pointing at the same entry afterwards.
        """
        temp_id = f'temp-{next(self._temp_ids)}'
        self.messages.append({
            'id': None,
            'temp_id': temp_id,
            'conversation_id': self.conversation_id,
            'sender_id': sender_id,
            'content': content,
            'created_at': datetime.utcnow().isoformat(),
            'pending': True,
        })
        handle = next(self._slots)
        self._pending[handle] = temp_id
        return handle

    def _position_of(self, handle):
        temp_id = self._pending.get(handle)
        if temp_id is None:
            raise LookupError(f'No optimistic message for handle {handle}')
        for position, entry in enumerate(self.messages):
            if entry.get('temp_id') == temp_id and entry.get('pending'):
                return position
        raise LookupError(f'Optimistic message {temp_id} is gone')

    def confirm(self, handle, message):
        """Replace the optimistic entry for ``handle`` with the server copy.

        When the relay already delivered the same message the temporary
        entry is dropped instead, so the message is shown once.
        """
        position = self._position_of(handle)
        del self._pending[handle]
        if message.get('id') in self.ids():
            del self.messages[position]
            return None
        self.messages[position] = dict(message, pending=False)
        return self.messages[position]

    def fail(self, handle, error):
        position = self._position_of(handle)
        del self._pending[handle]
        entry = self.messages.pop(position)
        self.errors.append(error)
        logger.warning(
            "Message send failed (%s): %s", entry.get('temp_id'), error)
        return entry
