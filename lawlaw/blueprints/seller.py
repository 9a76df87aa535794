from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import CartItem, Order, OrderItem, OrderStatus, Product
from lawlaw.middleware import role_required
from lawlaw.services.audit_service import log_audit
from lawlaw.services.order_workflow import (
    OrderTransitionError,
    seller_update_status)
from lawlaw.services.search_service import search_products
from lawlaw.utils import (
    order_to_dict,
    page_args,
    pagination_meta,
    product_to_dict)
from sqlalchemy import func
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('seller', __name__)


def _parse_product_fields(data, partial=False):
    """Validate product input; returns the cleaned fields."""
    fields = {}
    if 'name' in data or not partial:
        name = data.get('name')
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            raise ValueError('Product name cannot be empty')
        fields['name'] = name[:200]

    if 'price' in data or not partial:
        try:
            price = Decimal(str(data.get('price')))
        except (InvalidOperation, TypeError):
            raise ValueError('Invalid price')
        if not price.is_finite() or price < 0:
            raise ValueError('Invalid price')
        fields['price'] = price.quantize(Decimal('0.01'))

    if 'stock' in data or not partial:
        stock = data.get('stock', 0)
        if isinstance(stock, bool) or not isinstance(stock, (int, str)):
            raise ValueError('Invalid stock')
        try:
            stock = int(stock)
        except ValueError:
            raise ValueError('Invalid stock')
        if stock < 0:
            raise ValueError('Stock cannot be negative')
        fields['stock'] = stock

    for key in ('description', 'image', 'category'):
        if key in data:
            value = data.get(key)
            fields[key] = (str(value).strip() or None) \
                if value is not None else None
    return fields


def _owned_product_or_403(product_id):
    product = Product.query.filter_by(
        id=product_id, is_deleted=False).first_or_404()
    if product.seller_id != current_user.id \
            and current_user.role.value != 'admin':
        return None, (jsonify({'error': 'Not your product'}), 403)
    return product, None


@bp.route('/api/seller/products', methods=['GET'])
@login_required
@role_required('seller', 'admin')
def list_products():
    page, per_page = page_args()
    pagination = search_products(
        query=request.args.get('q'),
        category=request.args.get('category'),
        page=page,
        per_page=per_page,
        seller_id=current_user.id,
    )
    return jsonify({
        'items': [product_to_dict(p) for p in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/seller/products', methods=['POST'])
@login_required
@role_required('seller', 'admin')
def create_product():
    data = request.get_json(silent=True) or {}
    try:
        fields = _parse_product_fields(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    product = Product(seller_id=current_user.id, **fields)
    db.session.add(product)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='PRODUCT_CREATE',
        target_type='PRODUCT',
        target_id=product.id,
        payload={'name': product.name, 'price': str(product.price),
                 'stock': product.stock}
    )
    return jsonify({'product': product_to_dict(product)}), 201


@bp.route('/api/seller/products/<int:product_id>', methods=['GET'])
@login_required
@role_required('seller', 'admin')
def get_product(product_id):
    product, error = _owned_product_or_403(product_id)
    if error:
        return error
    return jsonify({'product': product_to_dict(product)})


@bp.route('/api/seller/products/<int:product_id>', methods=['PATCH', 'PUT'])
@login_required
@role_required('seller', 'admin')
def update_product(product_id):
    product, error = _owned_product_or_403(product_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    try:
        fields = _parse_product_fields(data, partial=True)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    for key, value in fields.items():
        setattr(product, key, value)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='PRODUCT_UPDATE',
        target_type='PRODUCT',
        target_id=product.id,
        payload={k: str(v) for k, v in fields.items()}
    )
    return jsonify({'product': product_to_dict(product)})


@bp.route('/api/seller/products/<int:product_id>', methods=['DELETE'])
@login_required
@role_required('seller', 'admin')
def delete_product(product_id):
    product, error = _owned_product_or_403(product_id)
    if error:
        return error

    # Soft delete keeps order items pointing at a real row
    product.is_deleted = True
    product.deleted_at = datetime.utcnow()
    CartItem.query.filter_by(product_id=product.id).delete(
        synchronize_session=False)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='PRODUCT_DELETE',
        target_type='PRODUCT',
        target_id=product.id,
    )
    return jsonify({'ok': True})


def _seller_orders_query(seller_id):
    order_ids = db.select(OrderItem.order_id).join(
        Product, Product.id == OrderItem.product_id
    ).where(Product.seller_id == seller_id)
    return Order.query.filter(Order.id.in_(order_ids))


@bp.route('/api/seller/orders', methods=['GET'])
@login_required
@role_required('seller')
def list_orders():
    page, per_page = page_args()
    query = _seller_orders_query(current_user.id)

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


@bp.route('/api/seller/orders/<int:order_id>', methods=['PATCH'])
@login_required
@role_required('seller')
def update_order(order_id):
    order = Order.query.get_or_404(order_id)
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({'error': 'status is required'}), 400

    try:
        seller_update_status(order, current_user, status)
    except OrderTransitionError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    return jsonify({'ok': True, 'order': order_to_dict(order)})


@bp.route('/api/seller/stats', methods=['GET'])
@login_required
@role_required('seller')
def stats():
    product_count = Product.query.filter_by(
        seller_id=current_user.id, is_deleted=False).count()

    units_sold, revenue = db.session.query(
        func.coalesce(func.sum(OrderItem.quantity), 0),
        func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price), 0),
    ).select_from(OrderItem).join(
        Product, Product.id == OrderItem.product_id
    ).join(
        Order, Order.id == OrderItem.order_id
    ).filter(
        Product.seller_id == current_user.id,
        Order.status != OrderStatus.CANCELLED,
    ).one()

    order_count = _seller_orders_query(current_user.id).count()
    return jsonify({
        'product_count': product_count,
        'order_count': order_count,
        'units_sold': int(units_sold or 0),
        'revenue': float(revenue or 0),
    })
