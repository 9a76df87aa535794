from lawlaw.models import Product, Recipe
from sqlalchemy import or_
import re
import logging

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 80

PRODUCT_SORTS = {
    'newest': Product.created_at.desc(),
    'price_asc': Product.price.asc(),
    'price_desc': Product.price.desc(),
    'name': Product.name.asc(),
}


def _sanitize_query(query):
    if not query:
        return None
    q = str(query).replace('\x00', '').strip()
    if not q:
        return None
    q = re.sub(r'[%_\\]', ' ', q)
    q = re.sub(r'\s+', ' ', q).strip()
    return q[:MAX_QUERY_LENGTH] or None


def _normalize_categories(category):
    if not category:
        return []
    if isinstance(category, (list, tuple, set)):
        raw = category
    else:
        raw = str(category).split(',')
    return [c.strip() for c in raw if c and c.strip()]


def search_products(
        query=None,
        category=None,
        sort_by='newest',
        page=1,
        per_page=20,
        seller_id=None):
    base_query = Product.query.filter_by(is_deleted=False)
    if seller_id is not None:
        base_query = base_query.filter_by(seller_id=seller_id)

    categories = _normalize_categories(category)
    if categories:
        base_query = base_query.filter(Product.category.in_(categories))

    query_safe = _sanitize_query(query)
    if query_safe:
        base_query = base_query.filter(
            or_(
                Product.name.ilike(f'%{query_safe}%'),
                Product.description.ilike(f'%{query_safe}%')
            )
        )

    order = PRODUCT_SORTS.get(sort_by, PRODUCT_SORTS['newest'])
    pagination = base_query.order_by(order, Product.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False)
    logger.debug(
        "Product search q=%r category=%r -> %s results",
        query_safe, categories, pagination.total)
    return pagination


def search_recipes(query=None, difficulty=None, page=1, per_page=20):
    base_query = Recipe.query
    query_safe = _sanitize_query(query)
    if query_safe:
        base_query = base_query.filter(
            or_(
                Recipe.title.ilike(f'%{query_safe}%'),
                Recipe.description.ilike(f'%{query_safe}%')
            )
        )
    if difficulty:
        base_query = base_query.filter(
            Recipe.difficulty == str(difficulty).strip().lower())
    return base_query.order_by(
        Recipe.created_at.desc(), Recipe.id.desc()).paginate(
            page=page, per_page=per_page, error_out=False)
