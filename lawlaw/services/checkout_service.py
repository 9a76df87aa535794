from lawlaw.extensions import db
from lawlaw.models import Address, CartItem, Order, OrderItem, OrderStatus
from lawlaw.services.audit_service import log_audit
from lawlaw.services.chat_service import (
    get_or_create_conversation,
    publish_message,
    add_message)
from lawlaw.services.mail_service import send_order_status_email
from lawlaw.services.notification_service import (
    add_notification,
    relay_notifications)
from lawlaw.services.order_workflow import append_history
from lawlaw.services.relay_service import publish_to_users, EVENT_ORDER_STATUS
from lawlaw.utils import address_snapshot, parse_id
from decimal import Decimal
import json
import logging

logger = logging.getLogger(__name__)


class CheckoutError(ValueError):
    status_code = 400


class CheckoutNotFound(CheckoutError):
    status_code = 404


def _saved_address(buyer, address_id=None):
    """The buyer's chosen address, or the default one when none is named."""
    if address_id is None:
        return Address.query.filter_by(
            user_id=buyer.id, is_default=True).first()
    try:
        address_id = parse_id(address_id, 'address_id')
    except ValueError as e:
        raise CheckoutError(str(e))
    address = Address.query.filter_by(
        id=address_id, user_id=buyer.id).first()
    if address is None:
        raise CheckoutNotFound('Address not found')
    return address


def _address_snapshot(value, field):
    if isinstance(value, dict):
        if not any(str(v).strip() for v in value.values() if v is not None):
            raise CheckoutError(f'{field} cannot be empty')
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    value = (value or '').strip() if isinstance(value, str) else ''
    if not value:
        raise CheckoutError(f'{field} cannot be empty')
    return value


def place_order(buyer, shipping_address, billing_address, payment_method,
                address_id=None):
    """Turn the buyer's cart into a pending order.

    ``address_id`` picks a saved address; without it and without an
    explicit shipping address the default saved address is used. Billing
    falls back to the shipping address in both cases.
    """
    if address_id is not None or not shipping_address:
        saved = _saved_address(buyer, address_id)
        if saved is not None:
            shipping_address = address_snapshot(saved)
            billing_address = billing_address or shipping_address
    shipping = _address_snapshot(shipping_address, 'shipping_address')
    billing = _address_snapshot(billing_address, 'billing_address')
    payment_method = (payment_method or '').strip() \
        if isinstance(payment_method, str) else ''
    if not payment_method:
        raise CheckoutError('payment_method cannot be empty')

    cart_items = CartItem.query.filter_by(user_id=buyer.id).order_by(
        CartItem.id).all()
    if not cart_items:
        raise CheckoutError('Cart is empty')

    for cart_item in cart_items:
        product = cart_item.product
        if product is None or product.is_deleted:
            raise CheckoutError('A product in your cart is no longer available')
        if product.seller_id == buyer.id:
            raise CheckoutError('You cannot buy your own product')
        if product.stock < cart_item.quantity:
            raise CheckoutError(
                f'Product {product.name} has insufficient stock')

    total_amount = sum(
        (Decimal(str(ci.product.price)) * ci.quantity for ci in cart_items),
        Decimal('0'))
    order = Order(
        buyer_id=buyer.id,
        total_amount=total_amount,
        shipping_address=shipping,
        billing_address=billing,
        payment_method=payment_method,
        status=OrderStatus.PENDING,
    )
    db.session.add(order)
    db.session.flush()

    greetings = []
    seller_ids = []
    for cart_item in cart_items:
        product = cart_item.product
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=cart_item.quantity,
            unit_price=product.price,
        ))
        product.stock -= cart_item.quantity
        if product.seller_id not in seller_ids:
            seller_ids.append(product.seller_id)

        conversation, _ = get_or_create_conversation(
            product.seller_id, buyer.id, product.id)
        greetings.append((conversation, add_message(
            conversation,
            product.seller_id,
            f'Thank you for ordering {product.name}! '
            f'We will keep you posted on order #{order.id}.')))
        db.session.delete(cart_item)

    append_history(order, 'Order placed')

    notifications = [add_notification(
        buyer.id,
        'Order placed',
        f'Your order #{order.id} has been placed.')]
    for seller_id in seller_ids:
        notifications.append(add_notification(
            seller_id,
            'New order',
            f'Order #{order.id} contains your products.'))

    db.session.commit()
    logger.info(
        "Order %s placed by user %s total=%s",
        order.id, buyer.id, order.total_amount)

    for conversation, message in greetings:
        publish_message(conversation, message)
    relay_notifications(notifications)
    publish_to_users(
        [buyer.id] + seller_ids,
        EVENT_ORDER_STATUS,
        {'order_id': order.id, 'status': order.status.value,
         'admin_approval_required': False,
         'updated_at': order.updated_at.isoformat()})
    send_order_status_email(buyer.email, order.id, order.status.value)

    log_audit(
        actor_id=buyer.id,
        actor_role=buyer.role.value,
        action='ORDER_CREATED',
        target_type='ORDER',
        target_id=order.id,
        payload={'total_amount': str(order.total_amount),
                 'items': len(cart_items),
                 'payment_method': payment_method},
    )
    return order
