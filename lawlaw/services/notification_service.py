from lawlaw.extensions import db
from lawlaw.models import Notification, NotificationType, User, UserRole
from lawlaw.services.relay_service import publish_to_users, EVENT_NOTIFICATION
from lawlaw.utils import notification_to_dict
import logging

logger = logging.getLogger(__name__)


def add_notification(user_id, title, message,
                     type_=NotificationType.ORDER_UPDATE):
    """Stage a notification in the current session. Caller commits."""
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type_,
    )
    db.session.add(notification)
    return notification


def notify_admins(title, message):
    admins = User.query.filter_by(role=UserRole.ADMIN, is_active=True).all()
    return [
        add_notification(
            admin.id,
            title,
            message,
            NotificationType.ADMIN_ACTION_REQUIRED)
        for admin in admins
    ]


def relay_notifications(notifications):
    """Relay already committed notifications to their owners."""
    for notification in notifications:
        publish_to_users(
            [notification.user_id],
            EVENT_NOTIFICATION,
            notification_to_dict(notification))
