from functools import wraps
from flask import current_app, jsonify, request
from flask_login import current_user
from lawlaw.models import Message, ProductReview
import logging

logger = logging.getLogger(__name__)


def _iso(value):
    return value.isoformat() if value else None


def page_args():
    page = request.args.get('page', 1, type=int) or 1
    per_page = request.args.get(
        'per_page', current_app.config['ITEMS_PER_PAGE'], type=int)
    per_page = max(1, min(per_page or 1, 100))
    return max(page, 1), per_page


def pagination_meta(pagination):
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
    }


def object_permission_required(
        model_class,
        id_param='id',
        owner_field='user_id'):
    """Load ``model_class`` by URL id and require owner or admin access."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            resource_id = kwargs.get(id_param)
            if not resource_id:
                return jsonify({'error': 'Resource ID missing'}), 400

            resource = model_class.query.get_or_404(resource_id)

            owner_id = getattr(resource, owner_field, None)
            if owner_id != current_user.id \
                    and current_user.role.value != 'admin':
                logger.warning(
                    "User %s attempted to modify %s %s",
                    current_user.id,
                    model_class.__name__,
                    resource_id,
                )
                return jsonify({
                    'error': 'No permission to access this resource'
                }), 403

            kwargs['resource'] = resource
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def parse_id(value, field='id'):
    """Coerce a JSON body id to a positive int or raise ValueError."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f'{field} must be an integer')
    try:
        value = int(value)
    except ValueError:
        raise ValueError(f'{field} must be an integer')
    if value <= 0:
        raise ValueError(f'{field} must be an integer')
    return value


def user_to_dict(user):
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role.value,
        'email_verified': user.email_verified,
        'is_active': user.is_active,
        'created_at': _iso(user.created_at),
    }


def product_to_dict(product):
    return {
        'id': product.id,
        'seller_id': product.seller_id,
        'seller_name': product.seller.display_name if product.seller else None,
        'name': product.name,
        'description': product.description,
        'price': float(product.price),
        'stock': product.stock,
        'image': product.image,
        'category': product.category,
        'rating': round(product.rating or 0, 2),
        'created_at': _iso(product.created_at),
        'updated_at': _iso(product.updated_at),
    }


def tracking_to_dict(entry):
    return {
        'id': entry.id,
        'status': entry.status.value,
        'description': entry.description,
        'created_at': _iso(entry.created_at),
    }


def order_to_dict(order, include_items=True):
    data = {
        'id': order.id,
        'buyer_id': order.buyer_id,
        'total_amount': float(order.total_amount),
        'shipping_address': order.shipping_address,
        'billing_address': order.billing_address,
        'payment_method': order.payment_method,
        'status': order.status.value,
        'admin_approval_required': order.admin_approval_required,
        'cancellation_reason': order.cancellation_reason,
        'cancelled_at': _iso(order.cancelled_at),
        'created_at': _iso(order.created_at),
        'updated_at': _iso(order.updated_at),
    }
    if include_items:
        data['items'] = [{
            'id': item.id,
            'product_id': item.product_id,
            'product_name': item.product.name if item.product else None,
            'seller_id': item.product.seller_id if item.product else None,
            'quantity': item.quantity,
            'unit_price': float(item.unit_price),
            'subtotal': float(item.unit_price) * item.quantity,
        } for item in order.items]
    return data


def message_to_dict(message):
    return {
        'id': message.id,
        'conversation_id': message.conversation_id,
        'sender_id': message.sender_id,
        'sender_name': (
            message.sender.display_name if message.sender else None),
        'content': message.content,
        'is_read': message.is_read,
        'created_at': _iso(message.created_at),
    }


def conversation_to_dict(conversation, viewer_id=None):
    last = conversation.messages.order_by(None).order_by(
        Message.id.desc()).first()
    data = {
        'id': conversation.id,
        'seller_id': conversation.seller_id,
        'seller_name': conversation.seller.display_name,
        'buyer_id': conversation.buyer_id,
        'buyer_name': conversation.buyer.display_name,
        'product_id': conversation.product_id,
        'product_name': (
            conversation.product.name if conversation.product else None),
        'last_message': message_to_dict(last) if last else None,
        'updated_at': _iso(conversation.updated_at),
        'created_at': _iso(conversation.created_at),
    }
    if viewer_id is not None:
        data['unread_count'] = conversation.messages.filter(
            Message.sender_id != viewer_id,
            Message.is_read.is_(False)).count()
    return data


def notification_to_dict(notification):
    return {
        'id': notification.id,
        'title': notification.title,
        'message': notification.message,
        'type': notification.type.value,
        'is_read': notification.is_read,
        'created_at': _iso(notification.created_at),
    }


def recipe_to_dict(recipe):
    return {
        'id': recipe.id,
        'author_id': recipe.author_id,
        'title': recipe.title,
        'description': recipe.description,
        'ingredients': recipe.ingredients,
        'instructions': recipe.instructions,
        'image': recipe.image,
        'prep_time': recipe.prep_time,
        'cook_time': recipe.cook_time,
        'servings': recipe.servings,
        'difficulty': recipe.difficulty,
        'rating': round(recipe.rating or 0, 2),
        'created_at': _iso(recipe.created_at),
        'updated_at': _iso(recipe.updated_at),
    }


def review_to_dict(review):
    data = {
        'id': review.id,
        'user_id': review.user_id,
        'user_name': review.user.display_name if review.user else None,
        'rating': review.rating,
        'content': review.content,
        'created_at': _iso(review.created_at),
        'updated_at': _iso(review.updated_at),
    }
    if isinstance(review, ProductReview):
        data['product_id'] = review.product_id
        data['seller_reply'] = review.seller_reply
        data['seller_reply_at'] = _iso(review.seller_reply_at)
    else:
        data['recipe_id'] = review.recipe_id
    return data


ADDRESS_FIELDS = (
    'full_name',
    'phone_number',
    'region',
    'province',
    'city',
    'barangay',
    'street_address',
    'postal_code',
    'landmark',
)


def address_snapshot(address):
    """The address fields an order keeps once it is placed."""
    return {field: getattr(address, field) for field in ADDRESS_FIELDS}


def address_to_dict(address):
    return {
        'id': address.id,
        **address_snapshot(address),
        'is_default': address.is_default,
        'created_at': _iso(address.created_at),
        'updated_at': _iso(address.updated_at),
    }


def seller_application_to_dict(application):
    return {
        'id': application.id,
        'user_id': application.user_id,
        'user_email': application.user.email if application.user else None,
        'business_name': application.business_name,
        'business_type': application.business_type,
        'description': application.description,
        'contact_number': application.contact_number,
        'address': application.address,
        'status': application.status.value,
        'reviewed_by': application.reviewed_by,
        'reviewed_at': _iso(application.reviewed_at),
        'created_at': _iso(application.created_at),
    }
