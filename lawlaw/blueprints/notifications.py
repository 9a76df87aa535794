from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Notification
from lawlaw.utils import notification_to_dict
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('notifications', __name__)

LATEST_LIMIT = 20


@bp.route('/api/notifications', methods=['GET'])
@login_required
def list_notifications():
    query = Notification.query.filter_by(user_id=current_user.id)
    latest = query.order_by(
        Notification.created_at.desc(),
        Notification.id.desc()).limit(LATEST_LIMIT).all()
    unread = query.filter(Notification.is_read.is_(False)).count()
    return jsonify({
        'items': [notification_to_dict(n) for n in latest],
        'unread_count': unread,
    })


@bp.route('/api/notifications', methods=['PATCH'])
@login_required
def mark_read():
    """Mark one notification (``id``) or all of them (``all``) as read."""
    data = request.get_json(silent=True) or {}
    query = Notification.query.filter_by(
        user_id=current_user.id, is_read=False)

    if data.get('all') is True:
        updated = query.update({'is_read': True}, synchronize_session=False)
    elif data.get('id') is not None:
        notification = Notification.query.filter_by(
            id=data.get('id'), user_id=current_user.id).first_or_404()
        updated = 0 if notification.is_read else 1
        notification.is_read = True
    else:
        return jsonify({'error': 'Provide id or all=true'}), 400

    db.session.commit()
    unread = Notification.query.filter_by(
        user_id=current_user.id, is_read=False).count()
    return jsonify({'ok': True, 'updated': updated, 'unread_count': unread})
