from lawlaw.extensions import db
from lawlaw.models import ProductReview, RecipeReview
from sqlalchemy import func
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

MAX_REVIEW_LENGTH = 2000


class ReviewError(ValueError):
    status_code = 400


class ReviewPermissionError(ReviewError):
    status_code = 403


class ReviewNotFound(ReviewError):
    status_code = 404


def parse_rating(value):
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ReviewError('Rating must be between 1 and 5')
    if isinstance(value, float) and not value.is_integer():
        raise ReviewError('Rating must be a whole number')
    try:
        rating = int(value)
    except ValueError:
        raise ReviewError('Rating must be between 1 and 5')
    if not 1 <= rating <= 5:
        raise ReviewError('Rating must be between 1 and 5')
    return rating


def _clean_text(value, field):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ReviewError(f'{field} must be a string')
    value = value.strip()
    if len(value) > MAX_REVIEW_LENGTH:
        raise ReviewError(
            f'{field} must be at most {MAX_REVIEW_LENGTH} characters')
    return value or None


def _average(column, fk_column, target_id):
    average = db.session.query(func.avg(column)).filter(
        fk_column == target_id).scalar()
    return round(float(average or 0), 2)


def _refresh_product_rating(product):
    product.rating = _average(
        ProductReview.rating, ProductReview.product_id, product.id)


def _refresh_recipe_rating(recipe):
    recipe.rating = _average(
        RecipeReview.rating, RecipeReview.recipe_id, recipe.id)


def submit_product_review(product, user, rating, content=None):
    """Create or update ``user``'s review; one review per user and product.

    Returns ``(review, created)``.
    """
    if product.seller_id == user.id:
        raise ReviewPermissionError('You cannot review your own product')
    rating = parse_rating(rating)
    content = _clean_text(content, 'content')

    review = ProductReview.query.filter_by(
        product_id=product.id, user_id=user.id).first()
    created = review is None
    if created:
        review = ProductReview(product_id=product.id, user_id=user.id)
        db.session.add(review)
    review.rating = rating
    review.content = content
    db.session.flush()

    _refresh_product_rating(product)
    db.session.commit()
    logger.info(
        "Review %s on product %s rating=%s (created=%s)",
        review.id, product.id, rating, created)
    return review, created


def delete_product_review(product, user):
    review = ProductReview.query.filter_by(
        product_id=product.id, user_id=user.id).first()
    if review is None:
        raise ReviewNotFound('Review not found')
    review_id = review.id
    db.session.delete(review)
    db.session.flush()

    _refresh_product_rating(product)
    db.session.commit()
    return review_id


def _review_for_seller(product, review_id, seller):
    if product.seller_id != seller.id:
        raise ReviewPermissionError('Only the seller can reply to reviews')
    review = db.session.get(ProductReview, review_id)
    if review is None or review.product_id != product.id:
        raise ReviewNotFound('Review not found')
    return review


def reply_to_review(product, review_id, seller, reply):
    review = _review_for_seller(product, review_id, seller)
    reply = _clean_text(reply, 'reply')
    if not reply:
        raise ReviewError('Reply content is required')
    review.seller_reply = reply
    review.seller_reply_at = datetime.utcnow()
    db.session.commit()
    return review


def delete_reply(product, review_id, seller):
    review = _review_for_seller(product, review_id, seller)
    if review.seller_reply is None:
        raise ReviewNotFound('Reply not found')
    review.seller_reply = None
    review.seller_reply_at = None
    db.session.commit()
    return review


def submit_recipe_review(recipe, user, rating, content=None):
    rating = parse_rating(rating)
    content = _clean_text(content, 'content')

    review = RecipeReview.query.filter_by(
        recipe_id=recipe.id, user_id=user.id).first()
    created = review is None
    if created:
        review = RecipeReview(recipe_id=recipe.id, user_id=user.id)
        db.session.add(review)
    review.rating = rating
    review.content = content
    db.session.flush()

    _refresh_recipe_rating(recipe)
    db.session.commit()
    return review, created


def delete_recipe_review(recipe, user):
    review = RecipeReview.query.filter_by(
        recipe_id=recipe.id, user_id=user.id).first()
    if review is None:
        raise ReviewNotFound('Review not found')
    review_id = review.id
    db.session.delete(review)
    db.session.flush()

    _refresh_recipe_rating(recipe)
    db.session.commit()
    return review_id
