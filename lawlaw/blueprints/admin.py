from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import (
    Order,
    OrderStatus,
    Product,
    Recipe,
    User,
    UserRole)
from lawlaw.middleware import role_required
from lawlaw.services.audit_service import log_audit
from lawlaw.services.order_workflow import (
    OrderTransitionError,
    admin_cancel_order,
    decide_cancellation,
    set_order_status)
from lawlaw.utils import (
    order_to_dict,
    page_args,
    pagination_meta,
    user_to_dict)
from sqlalchemy import func, or_
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('admin', __name__)


@bp.route('/api/admin/orders', methods=['GET'])
@login_required
@role_required('admin')
def admin_orders():
    page, per_page = page_args()
    query = Order.query

    status = request.args.get('status')
    if status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            return jsonify({'error': 'Invalid status'}), 400

    if request.args.get('pending_approval') in ('1', 'true', 'yes'):
        query = query.filter(Order.admin_approval_required.is_(True))

    pagination = query.order_by(Order.created_at.desc(), Order.id.desc()) \
        .paginate(page=page, per_page=per_page, error_out=False)
    return jsonify({
        'items': [order_to_dict(o) for o in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/admin/orders/<int:order_id>', methods=['PATCH'])
@login_required
@role_required('admin')
def update_order_status(order_id):
    order = Order.query.get_or_404(order_id)
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({'error': 'status is required'}), 400

    try:
        set_order_status(order, current_user, status, note=data.get('note'))
    except OrderTransitionError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'order': order_to_dict(order)})


@bp.route(
    '/api/admin/orders/<int:order_id>/approve-cancellation',
    methods=['PATCH', 'POST'])
@login_required
@role_required('admin')
def approve_cancellation(order_id):
    order = Order.query.get_or_404(order_id)
    data = request.get_json(silent=True) or {}
    if 'approved' not in data:
        return jsonify({'error': 'approved flag is required'}), 400

    try:
        decide_cancellation(order, current_user, data.get('approved'))
    except OrderTransitionError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'order': order_to_dict(order)})


@bp.route('/api/admin/orders/<int:order_id>/cancel', methods=['POST'])
@login_required
@role_required('admin')
def cancel_order(order_id):
    order = Order.query.get_or_404(order_id)
    data = request.get_json(silent=True) or {}
    try:
        admin_cancel_order(order, current_user, data.get('reason'))
    except OrderTransitionError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'order': order_to_dict(order)})


@bp.route('/api/admin/stats', methods=['GET'])
@login_required
@role_required('admin')
def stats():
    status_counts = dict(
        db.session.query(Order.status, func.count(Order.id))
        .group_by(Order.status).all())
    revenue = db.session.query(
        func.coalesce(func.sum(Order.total_amount), 0)
    ).filter(Order.status != OrderStatus.CANCELLED).scalar()

    return jsonify({
        'users': User.query.count(),
        'buyers': User.query.filter_by(role=UserRole.BUYER).count(),
        'sellers': User.query.filter_by(role=UserRole.SELLER).count(),
        'products': Product.query.filter_by(is_deleted=False).count(),
        'recipes': Recipe.query.count(),
        'orders': sum(status_counts.values()),
        'orders_by_status': {
            s.value: status_counts.get(s, 0) for s in OrderStatus},
        'pending_cancellations': Order.query.filter(
            Order.admin_approval_required.is_(True)).count(),
        'revenue': float(revenue or 0),
    })


@bp.route('/api/admin/users', methods=['GET'])
@login_required
@role_required('admin')
def list_users():
    page, per_page = page_args()
    query = User.query

    role = request.args.get('role')
    if role:
        try:
            query = query.filter(User.role == UserRole(role))
        except ValueError:
            return jsonify({'error': 'Invalid role'}), 400

    q = (request.args.get('q') or '').strip()
    if q:
        query = query.filter(or_(
            User.email.ilike(f'%{q}%'),
            User.name.ilike(f'%{q}%')))

    pagination = query.order_by(User.id).paginate(
        page=page, per_page=per_page, error_out=False)
    return jsonify({
        'items': [user_to_dict(u) for u in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/admin/users/<int:user_id>/block', methods=['POST'])
@login_required
@role_required('admin')
def block_user(user_id):
    user = User.query.get_or_404(user_id)
    data = request.get_json(silent=True) or {}
    blocked = data.get('blocked', True)
    if not isinstance(blocked, bool):
        return jsonify({'error': 'blocked must be a boolean'}), 400

    if user.id == current_user.id:
        return jsonify({'error': 'You cannot block yourself'}), 400

    user.is_active = not blocked
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='USER_BLOCK' if blocked else 'USER_UNBLOCK',
        target_type='USER',
        target_id=user.id,
    )
    return jsonify({'ok': True, 'user': user_to_dict(user)})
