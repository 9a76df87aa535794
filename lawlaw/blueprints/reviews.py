from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Product, ProductReview, Recipe, RecipeReview
from lawlaw.services.audit_service import log_audit
from lawlaw.services.review_service import (
    ReviewError,
    delete_product_review,
    delete_recipe_review,
    delete_reply,
    reply_to_review,
    submit_product_review,
    submit_recipe_review)
from lawlaw.utils import review_to_dict
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('reviews', __name__)


def _active_product_or_404(product_id):
    return Product.query.filter_by(
        id=product_id, is_deleted=False).first_or_404()


def _review_list(reviews, rating):
    return jsonify({
        'items': [review_to_dict(r) for r in reviews],
        'count': len(reviews),
        'rating': round(rating or 0, 2),
    })


@bp.route('/api/products/<int:product_id>/reviews', methods=['GET'])
def product_reviews(product_id):
    product = _active_product_or_404(product_id)
    reviews = product.reviews.order_by(
        ProductReview.created_at.desc(), ProductReview.id.desc()).all()
    return _review_list(reviews, product.rating)


@bp.route('/api/products/<int:product_id>/reviews', methods=['POST'])
@login_required
def submit_product(product_id):
    product = _active_product_or_404(product_id)
    data = request.get_json(silent=True) or {}
    try:
        review, created = submit_product_review(
            product, current_user, data.get('rating'), data.get('content'))
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='REVIEW_CREATE' if created else 'REVIEW_UPDATE',
        target_type='REVIEW',
        target_id=review.id,
        payload={'product_id': product.id, 'rating': review.rating},
    )
    return jsonify({
        'ok': True,
        'review': review_to_dict(review),
        'rating': product.rating,
    }), 201 if created else 200


@bp.route('/api/products/<int:product_id>/reviews', methods=['DELETE'])
@login_required
def delete_product(product_id):
    product = _active_product_or_404(product_id)
    try:
        review_id = delete_product_review(product, current_user)
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='REVIEW_DELETE',
        target_type='REVIEW',
        target_id=review_id,
        payload={'product_id': product.id},
    )
    return jsonify({'ok': True, 'rating': product.rating})


@bp.route(
    '/api/products/<int:product_id>/reviews/<int:review_id>/reply',
    methods=['POST'])
@login_required
def reply(product_id, review_id):
    product = _active_product_or_404(product_id)
    data = request.get_json(silent=True) or {}
    try:
        review = reply_to_review(
            product, review_id, current_user, data.get('reply'))
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='REVIEW_REPLY',
        target_type='REVIEW',
        target_id=review.id,
        payload={'product_id': product.id},
    )
    return jsonify({'ok': True, 'review': review_to_dict(review)})


@bp.route(
    '/api/products/<int:product_id>/reviews/<int:review_id>/reply',
    methods=['DELETE'])
@login_required
def remove_reply(product_id, review_id):
    product = _active_product_or_404(product_id)
    try:
        review = delete_reply(product, review_id, current_user)
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code
    return jsonify({'ok': True, 'review': review_to_dict(review)})


@bp.route('/api/recipes/<int:recipe_id>/reviews', methods=['GET'])
def recipe_reviews(recipe_id):
    recipe = Recipe.query.get_or_404(recipe_id)
    reviews = recipe.reviews.order_by(
        RecipeReview.created_at.desc(), RecipeReview.id.desc()).all()
    return _review_list(reviews, recipe.rating)


@bp.route('/api/recipes/<int:recipe_id>/reviews', methods=['POST'])
@login_required
def submit_recipe(recipe_id):
    recipe = Recipe.query.get_or_404(recipe_id)
    data = request.get_json(silent=True) or {}
    try:
        review, created = submit_recipe_review(
            recipe, current_user, data.get('rating'), data.get('content'))
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='RECIPE_REVIEW_CREATE' if created else 'RECIPE_REVIEW_UPDATE',
        target_type='RECIPE_REVIEW',
        target_id=review.id,
        payload={'recipe_id': recipe.id, 'rating': review.rating},
    )
    return jsonify({
        'ok': True,
        'review': review_to_dict(review),
        'rating': recipe.rating,
    }), 201 if created else 200


@bp.route('/api/recipes/<int:recipe_id>/reviews', methods=['DELETE'])
@login_required
def delete_recipe(recipe_id):
    recipe = Recipe.query.get_or_404(recipe_id)
    try:
        review_id = delete_recipe_review(recipe, current_user)
    except ReviewError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), e.status_code

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='RECIPE_REVIEW_DELETE',
        target_type='RECIPE_REVIEW',
        target_id=review_id,
        payload={'recipe_id': recipe.id},
    )
    return jsonify({'ok': True, 'rating': recipe.rating})
