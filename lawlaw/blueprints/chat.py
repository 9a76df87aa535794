from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Conversation, Message
from lawlaw.services.chat_service import (
    ChatError,
    delete_message,
    mark_conversation_read,
    post_message,
    start_conversation)
from lawlaw.utils import conversation_to_dict, message_to_dict, parse_id
from sqlalchemy import or_
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('chat', __name__)


def _conversation_for_user(conversation_id):
    conversation = Conversation.query.get_or_404(conversation_id)
    if not conversation.has_participant(current_user.id):
        return None, (jsonify({
            'error': 'You are not part of this conversation'}), 403)
    return conversation, None


@bp.route('/api/chat/conversations', methods=['GET'])
@login_required
def list_conversations():
    conversations = Conversation.query.filter(
        or_(Conversation.seller_id == current_user.id,
            Conversation.buyer_id == current_user.id)
    ).order_by(Conversation.updated_at.desc(), Conversation.id.desc()).all()
    return jsonify({
        'items': [
            conversation_to_dict(c, viewer_id=current_user.id)
            for c in conversations]
    })


@bp.route('/api/chat/conversations', methods=['POST'])
@login_required
def create_conversation():
    data = request.get_json(silent=True) or {}
    content = data.get('message')
    if content is not None and not isinstance(content, str):
        return jsonify({'error': 'message must be a string'}), 400
    if data.get('product_id') is None:
        return jsonify({'error': 'product_id is required'}), 400
    try:
        product_id = parse_id(data.get('product_id'), 'product_id')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    try:
        conversation, created = start_conversation(
            current_user, product_id, content)
    except ChatError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({
        'ok': True,
        'created': created,
        'conversation': conversation_to_dict(
            conversation, viewer_id=current_user.id),
    }), 201 if created else 200


@bp.route('/api/chat/messages', methods=['GET'])
@login_required
def list_messages():
    conversation_id = request.args.get('conversation_id', type=int)
    if not conversation_id:
        return jsonify({'error': 'conversation_id is required'}), 400
    conversation, error = _conversation_for_user(conversation_id)
    if error:
        return error

    query = conversation.messages
    after_id = request.args.get('after_id', type=int)
    if after_id:
        query = query.filter(Message.id > after_id)
    messages = query.all()

    mark_conversation_read(conversation, current_user)
    return jsonify({
        'conversation_id': conversation.id,
        'items': [message_to_dict(m) for m in messages],
    })


@bp.route('/api/chat/messages', methods=['POST'])
@login_required
def send_message():
    data = request.get_json(silent=True) or {}
    if data.get('conversation_id') is None:
        return jsonify({'error': 'conversation_id is required'}), 400
    try:
        conversation_id = parse_id(
            data.get('conversation_id'), 'conversation_id')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    content = data.get('content', data.get('message'))
    if not isinstance(content, str):
        return jsonify({'error': 'Message content cannot be empty'}), 400

    conversation, error = _conversation_for_user(conversation_id)
    if error:
        return error
    try:
        message = post_message(conversation, current_user, content)
    except ChatError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'message': message_to_dict(message)}), 201


@bp.route('/api/chat/messages/<int:message_id>', methods=['DELETE'])
@login_required
def remove_message(message_id):
    message = Message.query.get_or_404(message_id)
    try:
        payload = delete_message(message, current_user)
    except ChatError as e:
        return jsonify({'error': str(e)}), e.status_code
    return jsonify({'ok': True, **payload})
