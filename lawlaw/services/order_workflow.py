"""Order status transitions and the buyer cancellation workflow.

``next_status`` is the gate: it looks only at the current status, the
requested action, the actor role, the approval flag and the cancel policy,
and either returns the outcome or raises ``OrderTransitionError``. The
``*_order`` functions apply an accepted outcome to a persisted order as one
unit of work, then relay the change and write the audit trail.
"""
from lawlaw.extensions import db
from lawlaw.models import (
    NotificationType,
    OrderStatus,
    Product,
    TrackingHistoryEntry)
from lawlaw.services.audit_service import log_audit
from lawlaw.services.mail_service import send_order_status_email
from lawlaw.services.notification_service import (
    add_notification,
    notify_admins,
    relay_notifications)
from lawlaw.services.relay_service import (
    publish_to_users,
    EVENT_ORDER_STATUS)
from flask import current_app
from collections import namedtuple
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

ACTION_CANCEL = 'cancel'
ACTION_APPROVE_CANCELLATION = 'approve_cancellation'
ACTION_SET_STATUS = 'set_status'
ACTION_ADMIN_CANCEL = 'admin_cancel'
ACTION_SELLER_UPDATE = 'seller_update'

BUYER_CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PROCESSING)
ADMIN_NOT_CANCELLABLE = (
    OrderStatus.CANCELLED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED)
SELLER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED)

_ADMIN_ONLY = (
    ACTION_APPROVE_CANCELLATION,
    ACTION_SET_STATUS,
    ACTION_ADMIN_CANCEL)


class CancelPolicy:
    IMMEDIATE = 'immediate'
    ESCALATE = 'escalate'
    ESCALATE_PROCESSING = 'escalate_processing'

    ALL = (IMMEDIATE, ESCALATE, ESCALATE_PROCESSING)


class OrderTransitionError(ValueError):
    status_code = 400


class OrderPermissionError(OrderTransitionError):
    status_code = 403


# status: order status after the action
# escalate: the action only raised admin_approval_required
Transition = namedtuple('Transition', ['status', 'escalate'])


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or '').strip().lower())
    except (ValueError, AttributeError):
        allowed = ', '.join(s.value for s in OrderStatus)
        raise OrderTransitionError(
            f'Invalid status {value!r}, expected one of: {allowed}')


def next_status(current, action, role, approval_pending=False,
                policy=CancelPolicy.ESCALATE_PROCESSING, approved=None,
                requested=None) -> Transition:
    """Decide the outcome of ``action`` on an order in ``current`` status."""
    if action in _ADMIN_ONLY and role != 'admin':
        raise OrderPermissionError('Only administrators can do this')
    if action == ACTION_SELLER_UPDATE and role not in ('seller', 'admin'):
        raise OrderPermissionError('Only sellers can do this')

    if action == ACTION_CANCEL:
        if approval_pending:
            raise OrderTransitionError(
                'Cancellation is already waiting for admin approval')
        if current not in BUYER_CANCELLABLE:
            raise OrderTransitionError(
                f'Order cannot be cancelled in status {current.value}')
        if policy not in CancelPolicy.ALL:
            raise OrderTransitionError(f'Unknown cancel policy {policy!r}')
        if policy == CancelPolicy.IMMEDIATE:
            return Transition(OrderStatus.CANCELLED, False)
        if policy == CancelPolicy.ESCALATE \
                or current == OrderStatus.PROCESSING:
            return Transition(current, True)
        return Transition(OrderStatus.CANCELLED, False)

    if action == ACTION_APPROVE_CANCELLATION:
        if not approval_pending:
            raise OrderTransitionError(
                'Order has no cancellation waiting for approval')
        if approved is None:
            raise OrderTransitionError('approved flag is required')
        if approved:
            return Transition(OrderStatus.CANCELLED, False)
        return Transition(current, False)

    if action == ACTION_SET_STATUS:
        if approval_pending:
            raise OrderTransitionError(
                'Resolve the pending cancellation request first')
        return Transition(parse_status(requested), False)

    if action == ACTION_ADMIN_CANCEL:
        if current in ADMIN_NOT_CANCELLABLE:
            raise OrderTransitionError(
                f'Order cannot be cancelled in status {current.value}')
        return Transition(OrderStatus.CANCELLED, False)

    if action == ACTION_SELLER_UPDATE:
        if approval_pending:
            raise OrderTransitionError(
                'Order has a cancellation waiting for admin approval')
        target = parse_status(requested)
        if target not in SELLER_STATUSES:
            raise OrderTransitionError('Sellers cannot cancel orders')
        if current == OrderStatus.CANCELLED:
            raise OrderTransitionError('Order is already cancelled')
        return Transition(target, False)

    raise OrderTransitionError(f'Unknown action {action!r}')


def restore_stock(order):
    for item in order.items:
        product = db.session.get(Product, item.product_id)
        if product:
            product.stock += item.quantity


def reserve_stock(order):
    items = list(order.items)
    for item in items:
        product = db.session.get(Product, item.product_id)
        if not product or product.stock < item.quantity:
            raise OrderTransitionError(
                f'Insufficient stock to reopen order {order.id}')
    for item in items:
        db.session.get(Product, item.product_id).stock -= item.quantity


def _move_to(order, status):
    """Set the status, keeping cancelled_at and stock consistent."""
    previous = order.status
    if status == OrderStatus.CANCELLED and previous != OrderStatus.CANCELLED:
        restore_stock(order)
        order.cancelled_at = datetime.utcnow()
    elif previous == OrderStatus.CANCELLED \
            and status != OrderStatus.CANCELLED:
        reserve_stock(order)
        order.cancelled_at = None
    order.status = status
    order.updated_at = datetime.utcnow()


def append_history(order, description):
    entry = TrackingHistoryEntry(
        order_id=order.id,
        status=order.status,
        description=description,
    )
    db.session.add(entry)
    return entry


def _interested_users(order):
    return [order.buyer_id] + sorted(order.seller_ids())


def _finish(order, actor, audit_action, payload, notifications,
            status_changed):
    db.session.commit()

    publish_to_users(
        _interested_users(order),
        EVENT_ORDER_STATUS,
        {
            'order_id': order.id,
            'status': order.status.value,
            'admin_approval_required': order.admin_approval_required,
            'updated_at': order.updated_at.isoformat(),
        })
    relay_notifications(notifications)

    if status_changed and order.buyer:
        send_order_status_email(
            order.buyer.email, order.id, order.status.value)

    log_audit(
        actor_id=actor.id,
        actor_role=actor.role.value,
        action=audit_action,
        target_type='ORDER',
        target_id=order.id,
        payload=payload,
    )
    return order


def cancel_order(order, actor, reason, policy=None):
    """Buyer cancellation; cancels now or escalates to an admin."""
    reason = reason.strip() if isinstance(reason, str) else ''
    if not reason:
        raise OrderTransitionError('Cancellation reason is required')
    policy = policy or current_app.config['ORDER_CANCEL_POLICY']

    previous = order.status
    transition = next_status(
        previous,
        ACTION_CANCEL,
        actor.role.value,
        approval_pending=order.admin_approval_required,
        policy=policy)

    order.cancellation_reason = reason
    notifications = []
    if transition.escalate:
        order.admin_approval_required = True
        order.updated_at = datetime.utcnow()
        append_history(order, f'Cancellation requested: {reason}')
        notifications.append(add_notification(
            order.buyer_id,
            'Cancellation requested',
            f'Your cancellation request for order #{order.id} '
            'is waiting for admin approval.'))
        notifications.extend(notify_admins(
            'Cancellation approval needed',
            f'Order #{order.id} cancellation requested: {reason}'))
        action = 'ORDER_CANCEL_REQUESTED'
    else:
        _move_to(order, transition.status)
        append_history(order, f'Cancelled by buyer: {reason}')
        notifications.append(add_notification(
            order.buyer_id,
            'Order cancelled',
            f'Your order #{order.id} has been cancelled.'))
        for seller_id in sorted(order.seller_ids()):
            notifications.append(add_notification(
                seller_id,
                'Order cancelled',
                f'Order #{order.id} was cancelled by the buyer.'))
        action = 'ORDER_CANCEL_BUYER'

    db.session.flush()
    logger.info(
        "Order %s cancel by user %s: %s -> %s (escalated=%s)",
        order.id, actor.id, previous.value, order.status.value,
        transition.escalate)
    return _finish(
        order,
        actor,
        action,
        {'reason': reason, 'policy': policy, 'from': previous.value,
         'to': order.status.value, 'escalated': transition.escalate},
        notifications,
        status_changed=not transition.escalate)


def decide_cancellation(order, actor, approved):
    """Admin approves or rejects a pending cancellation request."""
    if approved is not None and not isinstance(approved, bool):
        raise OrderTransitionError('approved must be a boolean')

    previous = order.status
    transition = next_status(
        previous,
        ACTION_APPROVE_CANCELLATION,
        actor.role.value,
        approval_pending=order.admin_approval_required,
        approved=approved)

    order.admin_approval_required = False
    if approved:
        _move_to(order, transition.status)
        append_history(order, 'Cancellation approved by admin')
        title = 'Cancellation approved'
        text = f'Your order #{order.id} has been cancelled.'
        action = 'ORDER_CANCEL_APPROVED'
    else:
        order.updated_at = datetime.utcnow()
        append_history(order, 'Cancellation request rejected by admin')
        title = 'Cancellation rejected'
        text = (f'Your cancellation request for order #{order.id} '
                'was rejected.')
        action = 'ORDER_CANCEL_REJECTED'

    notifications = [add_notification(order.buyer_id, title, text)]
    db.session.flush()
    return _finish(
        order,
        actor,
        action,
        {'approved': approved, 'from': previous.value,
         'to': order.status.value},
        notifications,
        status_changed=previous != order.status)


def set_order_status(order, actor, new_status, note=None):
    """Admin override within the status enum."""
    previous = order.status
    transition = next_status(
        previous,
        ACTION_SET_STATUS,
        actor.role.value,
        approval_pending=order.admin_approval_required,
        requested=new_status)

    _move_to(order, transition.status)
    append_history(
        order,
        note or f'Status set to {order.status.value} by admin')
    notifications = [add_notification(
        order.buyer_id,
        'Order updated',
        f'Your order #{order.id} is now {order.status.value}.')]
    db.session.flush()
    return _finish(
        order,
        actor,
        'ORDER_STATUS_SET',
        {'from': previous.value, 'to': order.status.value},
        notifications,
        status_changed=previous != order.status)


def admin_cancel_order(order, actor, reason=None):
    """Admin cancels directly; also resolves a pending request."""
    reason = (reason.strip() if isinstance(reason, str) else '') \
        or 'Cancelled by admin'
    previous = order.status
    was_pending_approval = order.admin_approval_required
    transition = next_status(
        previous,
        ACTION_ADMIN_CANCEL,
        actor.role.value,
        approval_pending=was_pending_approval)

    order.admin_approval_required = False
    order.cancellation_reason = reason
    _move_to(order, transition.status)
    append_history(order, f'Cancelled by admin: {reason}')
    notifications = [add_notification(
        order.buyer_id,
        'Order cancelled',
        f'Your order #{order.id} was cancelled by an administrator.')]
    db.session.flush()
    return _finish(
        order,
        actor,
        'ORDER_CANCEL_ADMIN',
        {'reason': reason, 'from': previous.value,
         'approval_was_pending': was_pending_approval},
        notifications,
        status_changed=True)


def seller_update_status(order, actor, new_status):
    """Seller moves an order that contains one of their products."""
    if actor.role.value != 'admin' and actor.id not in order.seller_ids():
        raise OrderPermissionError('Order does not contain your products')

    previous = order.status
    transition = next_status(
        previous,
        ACTION_SELLER_UPDATE,
        actor.role.value,
        approval_pending=order.admin_approval_required,
        requested=new_status)

    _move_to(order, transition.status)
    append_history(
        order,
        f'Status set to {order.status.value} by seller')
    notifications = [add_notification(
        order.buyer_id,
        'Order updated',
        f'Your order #{order.id} is now {order.status.value}.',
        NotificationType.ORDER_UPDATE)]
    db.session.flush()
    return _finish(
        order,
        actor,
        'ORDER_STATUS_SELLER',
        {'from': previous.value, 'to': order.status.value},
        notifications,
        status_changed=previous != order.status)
