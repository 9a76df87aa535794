from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import CartItem, Product
from lawlaw.utils import parse_id, product_to_dict
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('cart', __name__)


def _parse_quantity(value):
    if isinstance(value, bool):
        raise ValueError('Invalid quantity')
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValueError('Invalid quantity')
    if quantity <= 0:
        raise ValueError('Quantity must be positive')
    return quantity


def _cart_payload():
    items = CartItem.query.filter_by(user_id=current_user.id).order_by(
        CartItem.id).all()
    payload = []
    total = 0.0
    for item in items:
        subtotal = float(item.product.price) * item.quantity
        total += subtotal
        payload.append({
            'product_id': item.product_id,
            'quantity': item.quantity,
            'subtotal': subtotal,
            'available': (
                not item.product.is_deleted
                and item.product.stock >= item.quantity),
            'product': product_to_dict(item.product),
        })
    return {'items': payload, 'total': round(total, 2),
            'count': sum(i.quantity for i in items)}


@bp.route('/api/cart', methods=['GET'])
@login_required
def get_cart():
    return jsonify(_cart_payload())


@bp.route('/api/cart/items', methods=['POST'])
@login_required
def add_item():
    data = request.get_json(silent=True) or {}
    if data.get('product_id') is None:
        return jsonify({'error': 'product_id is required'}), 400
    try:
        product_id = parse_id(data.get('product_id'), 'product_id')
        quantity = _parse_quantity(data.get('quantity', 1))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    product = Product.query.filter_by(
        id=product_id, is_deleted=False).first_or_404()

    if product.seller_id == current_user.id:
        return jsonify({'error': 'You cannot buy your own product'}), 400

    item = CartItem.query.filter_by(
        user_id=current_user.id, product_id=product.id).first()
    new_quantity = quantity + (item.quantity if item else 0)
    if product.stock < new_quantity:
        return jsonify({'error': 'Insufficient stock'}), 400

    if item:
        item.quantity = new_quantity
    else:
        db.session.add(CartItem(
            user_id=current_user.id,
            product_id=product.id,
            quantity=quantity))
    db.session.commit()

    return jsonify({'ok': True, **_cart_payload()})


@bp.route('/api/cart/items/<int:product_id>', methods=['PATCH', 'PUT'])
@login_required
def update_item(product_id):
    item = CartItem.query.filter_by(
        user_id=current_user.id, product_id=product_id).first_or_404()
    data = request.get_json(silent=True) or {}
    try:
        quantity = _parse_quantity(data.get('quantity'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if item.product.stock < quantity:
        return jsonify({'error': 'Insufficient stock'}), 400

    item.quantity = quantity
    db.session.commit()
    return jsonify({'ok': True, **_cart_payload()})


@bp.route('/api/cart/items/<int:product_id>', methods=['DELETE'])
@login_required
def remove_item(product_id):
    item = CartItem.query.filter_by(
        user_id=current_user.id, product_id=product_id).first_or_404()
    db.session.delete(item)
    db.session.commit()
    return jsonify({'ok': True, **_cart_payload()})
