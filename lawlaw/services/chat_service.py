from lawlaw.extensions import db
from lawlaw.models import Conversation, Message, NotificationType, Product
from lawlaw.services.notification_service import (
    add_notification,
    relay_notifications)
from lawlaw.services.relay_service import (
    publish_to_users,
    EVENT_NEW_MESSAGE,
    EVENT_MESSAGE_DELETED)
from lawlaw.utils import message_to_dict
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class ChatError(ValueError):
    status_code = 400


class ChatPermissionError(ChatError):
    status_code = 403


class ChatNotFound(ChatError):
    status_code = 404


def get_or_create_conversation(seller_id, buyer_id, product_id):
    """Return ``(conversation, created)`` for the participant triple."""
    conversation = Conversation.query.filter_by(
        seller_id=seller_id,
        buyer_id=buyer_id,
        product_id=product_id).first()
    if conversation:
        return conversation, False

    conversation = Conversation(
        seller_id=seller_id,
        buyer_id=buyer_id,
        product_id=product_id)
    db.session.add(conversation)
    # uq_conversation_seller_buyer_product rejects a concurrent duplicate
    db.session.flush()
    return conversation, True


def _clean_content(content):
    content = (content or '').strip()
    if not content:
        raise ChatError('Message content cannot be empty')
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ChatError(
            f'Message is too long (max {MAX_MESSAGE_LENGTH} characters)')
    return content


def add_message(conversation, sender_id, content):
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content)
    db.session.add(message)
    conversation.updated_at = datetime.utcnow()
    return message


def publish_message(conversation, message):
    publish_to_users(
        [conversation.seller_id, conversation.buyer_id],
        EVENT_NEW_MESSAGE,
        message_to_dict(message))


def start_conversation(buyer, product_id, content=None):
    product = db.session.get(Product, product_id) if product_id else None
    if not product or product.is_deleted:
        raise ChatNotFound('Product not found')
    if product.seller_id == buyer.id:
        raise ChatError('You cannot start a conversation with yourself')

    conversation, created = get_or_create_conversation(
        product.seller_id, buyer.id, product.id)

    message = None
    if content:
        message = add_message(
            conversation, buyer.id, _clean_content(content))

    notifications = []
    if created:
        notifications.append(add_notification(
            product.seller_id,
            'New conversation',
            f'{buyer.display_name} asked about {product.name}.',
            NotificationType.CHAT))
    db.session.commit()

    if message is not None:
        publish_message(conversation, message)
    relay_notifications(notifications)
    logger.info(
        "Conversation %s for product %s (created=%s)",
        conversation.id, product.id, created)
    return conversation, created


def post_message(conversation, sender, content):
    if not conversation.has_participant(sender.id):
        raise ChatPermissionError('You are not part of this conversation')
    message = add_message(conversation, sender.id, _clean_content(content))
    db.session.commit()
    publish_message(conversation, message)
    return message


def delete_message(message, actor):
    """Remove a message. Allowed for its sender or the conversation seller."""
    conversation = message.conversation
    if actor.id not in (message.sender_id, conversation.seller_id):
        raise ChatPermissionError('You cannot delete this message')

    payload = {'id': message.id, 'conversation_id': conversation.id}
    db.session.delete(message)
    db.session.commit()
    publish_to_users(
        [conversation.seller_id, conversation.buyer_id],
        EVENT_MESSAGE_DELETED,
        payload)
    return payload


def mark_conversation_read(conversation, reader):
    updated = Message.query.filter(
        Message.conversation_id == conversation.id,
        Message.sender_id != reader.id,
        Message.is_read.is_(False)).update(
            {'is_read': True}, synchronize_session=False)
    db.session.commit()
    return updated
