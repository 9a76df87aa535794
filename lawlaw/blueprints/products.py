from flask import Blueprint, request, jsonify
from lawlaw.models import Product
from lawlaw.services.search_service import search_products
from lawlaw.utils import page_args, pagination_meta, product_to_dict
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('products', __name__)


@bp.route('/api/products', methods=['GET'])
def product_list():
    page, per_page = page_args()
    categories = request.args.getlist('category')
    pagination = search_products(
        query=request.args.get('q', '').strip() or None,
        category=categories or None,
        sort_by=request.args.get('sort', 'newest'),
        page=page,
        per_page=per_page,
    )
    return jsonify({
        'items': [product_to_dict(p) for p in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/products/<int:product_id>', methods=['GET'])
def product_detail(product_id):
    product = Product.query.filter_by(
        id=product_id, is_deleted=False).first_or_404()
    return jsonify({'product': product_to_dict(product)})
