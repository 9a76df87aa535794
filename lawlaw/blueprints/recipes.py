from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Recipe, RecipeFavorite, SavedRecipe
from lawlaw.services.audit_service import log_audit
from lawlaw.services.search_service import search_recipes
from lawlaw.utils import (
    object_permission_required,
    page_args,
    pagination_meta,
    parse_id,
    recipe_to_dict)
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('recipes', __name__)

DIFFICULTIES = ('easy', 'medium', 'hard')
MAX_NOTES_LENGTH = 2000


def _string_list(value, field):
    if isinstance(value, str):
        value = value.splitlines()
    if not isinstance(value, (list, tuple)):
        raise ValueError(f'{field} must be a list of strings')
    items = [str(v).strip() for v in value if v is not None]
    items = [v for v in items if v]
    if not items:
        raise ValueError(f'{field} cannot be empty')
    return items


def _optional_minutes(value, field):
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a non-negative integer')
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field} must be a non-negative integer')
    if value < 0:
        raise ValueError(f'{field} must be a non-negative integer')
    return value


def _apply_recipe_fields(recipe, data, partial=False):
    if 'title' in data or not partial:
        title = (data.get('title') or '').strip() \
            if isinstance(data.get('title'), str) else ''
        if not title:
            raise ValueError('Title cannot be empty')
        recipe.title = title[:200]

    if 'description' in data or not partial:
        description = data.get('description')
        if not isinstance(description, str) or not description.strip():
            raise ValueError('Description cannot be empty')
        recipe.description = description.strip()

    if 'ingredients' in data or not partial:
        recipe.ingredients = _string_list(
            data.get('ingredients'), 'ingredients')
    if 'instructions' in data or not partial:
        recipe.instructions = _string_list(
            data.get('instructions'), 'instructions')

    for field in ('prep_time', 'cook_time', 'servings'):
        if field in data:
            setattr(recipe, field, _optional_minutes(data.get(field), field))

    if 'difficulty' in data:
        difficulty = data.get('difficulty')
        if difficulty in (None, ''):
            recipe.difficulty = None
        elif str(difficulty).strip().lower() in DIFFICULTIES:
            recipe.difficulty = str(difficulty).strip().lower()
        else:
            raise ValueError(
                f'difficulty must be one of: {", ".join(DIFFICULTIES)}')

    if 'image' in data:
        image = data.get('image')
        recipe.image = (str(image).strip() or None) if image else None


@bp.route('/api/recipes', methods=['GET'])
def list_recipes():
    page, per_page = page_args()
    pagination = search_recipes(
        query=request.args.get('q'),
        difficulty=request.args.get('difficulty'),
        page=page,
        per_page=per_page,
    )
    return jsonify({
        'items': [recipe_to_dict(r) for r in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route('/api/recipes', methods=['POST'])
@login_required
def create_recipe():
    data = request.get_json(silent=True) or {}
    recipe = Recipe(author_id=current_user.id)
    try:
        _apply_recipe_fields(recipe, data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(recipe)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='RECIPE_CREATE',
        target_type='RECIPE',
        target_id=recipe.id,
        payload={'title': recipe.title}
    )
    return jsonify({'recipe': recipe_to_dict(recipe)}), 201


@bp.route('/api/recipes/<int:recipe_id>', methods=['GET'])
def recipe_detail(recipe_id):
    recipe = Recipe.query.get_or_404(recipe_id)
    data = recipe_to_dict(recipe)
    data['favorite_count'] = recipe.favorites.count()
    if current_user.is_authenticated:
        data['is_favorite'] = db.session.get(
            RecipeFavorite, (current_user.id, recipe.id)) is not None
        data['is_saved'] = db.session.get(
            SavedRecipe, (current_user.id, recipe.id)) is not None
    return jsonify({'recipe': data})


@bp.route('/api/recipes/<int:recipe_id>', methods=['PATCH', 'PUT'])
@login_required
@object_permission_required(
    Recipe, id_param='recipe_id', owner_field='author_id')
def update_recipe(recipe_id, resource):
    data = request.get_json(silent=True) or {}
    try:
        _apply_recipe_fields(resource, data, partial=True)
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    db.session.commit()
    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='RECIPE_UPDATE',
        target_type='RECIPE',
        target_id=resource.id,
        payload={'fields': sorted(data.keys())}
    )
    return jsonify({'recipe': recipe_to_dict(resource)})


@bp.route('/api/recipes/<int:recipe_id>', methods=['DELETE'])
@login_required
@object_permission_required(
    Recipe, id_param='recipe_id', owner_field='author_id')
def delete_recipe(recipe_id, resource):
    db.session.delete(resource)
    db.session.commit()
    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='RECIPE_DELETE',
        target_type='RECIPE',
        target_id=recipe_id,
    )
    return jsonify({'ok': True})


def _recipe_id_from_request():
    data = request.get_json(silent=True) or {}
    recipe_id = data.get('recipe_id') or request.args.get('recipe_id')
    try:
        return parse_id(recipe_id, 'recipe_id')
    except ValueError:
        return None


@bp.route('/api/recipe-favorites', methods=['GET'])
@login_required
def list_favorites():
    favorites = RecipeFavorite.query.filter_by(
        user_id=current_user.id).order_by(
            RecipeFavorite.created_at.desc()).all()
    return jsonify({
        'items': [{
            'recipe_id': f.recipe_id,
            'created_at': f.created_at.isoformat(),
            'recipe': recipe_to_dict(f.recipe),
        } for f in favorites]
    })


@bp.route('/api/recipe-favorites', methods=['POST'])
@login_required
def add_favorite():
    recipe_id = _recipe_id_from_request()
    if not recipe_id:
        return jsonify({'error': 'recipe_id is required'}), 400
    recipe = Recipe.query.get_or_404(recipe_id)

    if db.session.get(RecipeFavorite, (current_user.id, recipe.id)):
        return jsonify({'error': 'Recipe is already a favorite'}), 400

    db.session.add(RecipeFavorite(user_id=current_user.id, recipe_id=recipe.id))
    db.session.commit()
    return jsonify({'ok': True, 'recipe_id': recipe.id}), 201


@bp.route('/api/recipe-favorites', methods=['DELETE'])
@login_required
def remove_favorite():
    recipe_id = _recipe_id_from_request()
    if not recipe_id:
        return jsonify({'error': 'recipe_id is required'}), 400

    favorite = db.session.get(RecipeFavorite, (current_user.id, recipe_id))
    if not favorite:
        return jsonify({'error': 'Favorite not found'}), 404
    db.session.delete(favorite)
    db.session.commit()
    return jsonify({'ok': True})


def _saved_to_dict(saved):
    return {
        'recipe_id': saved.recipe_id,
        'notes': saved.notes,
        'created_at': saved.created_at.isoformat(),
        'recipe': recipe_to_dict(saved.recipe),
    }


def _clean_notes(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError('notes must be a string')
    value = value.strip()
    if len(value) > MAX_NOTES_LENGTH:
        raise ValueError(
            f'notes must be at most {MAX_NOTES_LENGTH} characters')
    return value or None


@bp.route('/api/saved-recipes', methods=['GET'])
@login_required
def list_saved():
    saved = SavedRecipe.query.filter_by(
        user_id=current_user.id).order_by(
            SavedRecipe.created_at.desc()).all()
    return jsonify({'items': [_saved_to_dict(s) for s in saved]})


@bp.route('/api/saved-recipes', methods=['POST'])
@login_required
def save_recipe():
    data = request.get_json(silent=True) or {}
    recipe_id = _recipe_id_from_request()
    if not recipe_id:
        return jsonify({'error': 'recipe_id is required'}), 400
    recipe = Recipe.query.get_or_404(recipe_id)

    try:
        notes = _clean_notes(data.get('notes'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if db.session.get(SavedRecipe, (current_user.id, recipe.id)):
        return jsonify({'error': 'Recipe is already saved'}), 400

    saved = SavedRecipe(
        user_id=current_user.id, recipe_id=recipe.id, notes=notes)
    db.session.add(saved)
    db.session.commit()
    return jsonify({'ok': True, 'saved': _saved_to_dict(saved)}), 201


@bp.route('/api/saved-recipes/<int:recipe_id>', methods=['PATCH', 'PUT'])
@login_required
def update_saved(recipe_id):
    saved = db.session.get(SavedRecipe, (current_user.id, recipe_id))
    if not saved:
        return jsonify({'error': 'Saved recipe not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        saved.notes = _clean_notes(data.get('notes'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    db.session.commit()
    return jsonify({'ok': True, 'saved': _saved_to_dict(saved)})


@bp.route('/api/saved-recipes/<int:recipe_id>', methods=['DELETE'])
@login_required
def remove_saved(recipe_id):
    saved = db.session.get(SavedRecipe, (current_user.id, recipe_id))
    if not saved:
        return jsonify({'error': 'Saved recipe not found'}), 404
    db.session.delete(saved)
    db.session.commit()
    return jsonify({'ok': True})
