from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Order, OrderStatus
from lawlaw.services.checkout_service import CheckoutError, place_order
from lawlaw.services.order_workflow import (
    OrderTransitionError,
    cancel_order)
from lawlaw.utils import (
    order_to_dict,
    page_args,
    pagination_meta,
    tracking_to_dict)
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('orders', __name__)


def _visible_order_or_403(order_id):
    """Buyer sees own orders, sellers orders with their items, admin all."""
    order = Order.query.get_or_404(order_id)
    role = current_user.role.value
    if role == 'admin' or order.buyer_id == current_user.id:
        return order, None
    if role == 'seller' and current_user.id in order.seller_ids():
        return order, None
    return None, (jsonify({'error': 'No permission to view this order'}), 403)


@bp.route('/api/checkout', methods=['POST'])
@bp.route('/api/orders', methods=['POST'])
@login_required
def checkout():
    data = request.get_json(silent=True) or {}
    try:
        order = place_order(
            current_user,
            data.get('shipping_address'),
            data.get('billing_address'),
            data.get('payment_method'),
            address_id=data.get('address_id'),
        )
    except CheckoutError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'order': order_to_dict(order)}), 201


@bp.route('/api/orders', methods=['GET'])
@login_required
def list_orders():
    page, per_page = page_args()
    query = Order.query.filter_by(buyer_id=current_user.id)

    status = request.args.get('status')
    if status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            return jsonify({'error': 'Invalid status'}), 400

    pagination = query.order_by(Order.created_at.desc(), Order.id.desc()) \
        .paginate(page=page, per_page=per_page, error_out=False)
    return jsonify({
        'items': [order_to_dict(o) for o in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/orders/<int:order_id>', methods=['GET'])
@login_required
def order_detail(order_id):
    order, error = _visible_order_or_403(order_id)
    if error:
        return error
    data = order_to_dict(order)
    data['tracking_history'] = [
        tracking_to_dict(t) for t in order.tracking_history]
    return jsonify({'order': data})


@bp.route('/api/orders/<int:order_id>/tracking', methods=['GET'])
@login_required
def order_tracking(order_id):
    order, error = _visible_order_or_403(order_id)
    if error:
        return error
    return jsonify({
        'order_id': order.id,
        'status': order.status.value,
        'admin_approval_required': order.admin_approval_required,
        'history': [tracking_to_dict(t) for t in order.tracking_history],
    })


@bp.route('/api/orders/<int:order_id>/cancel', methods=['POST'])
@login_required
def cancel(order_id):
    order = Order.query.get_or_404(order_id)
    if order.buyer_id != current_user.id:
        return jsonify({'error': 'No permission to cancel this order'}), 403

    data = request.get_json(silent=True) or {}
    try:
        cancel_order(order, current_user, data.get('reason'))
    except OrderTransitionError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    if order.admin_approval_required:
        message = 'Cancellation request submitted for admin approval'
    else:
        message = 'Order cancelled'
    return jsonify({
        'ok': True,
        'message': message,
        'order': order_to_dict(order),
    })
