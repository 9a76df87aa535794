import pytest

from lawlaw.extensions import db
from lawlaw.models import (
    AuditLog,
    Notification,
    NotificationType,
    OrderStatus,
    TrackingHistoryEntry,
    User,
    UserRole)
from lawlaw.services.order_workflow import (
    ACTION_ADMIN_CANCEL,
    ACTION_APPROVE_CANCELLATION,
    ACTION_CANCEL,
    ACTION_SELLER_UPDATE,
    ACTION_SET_STATUS,
    CancelPolicy,
    OrderPermissionError,
    OrderTransitionError,
    admin_cancel_order,
    cancel_order,
    decide_cancellation,
    next_status,
    seller_update_status,
    set_order_status)


def history(order):
    return TrackingHistoryEntry.query.filter_by(order_id=order.id).order_by(
        TrackingHistoryEntry.id).all()


class TestNextStatus:

    @pytest.mark.parametrize('status', [
        OrderStatus.PENDING, OrderStatus.PROCESSING])
    def test_cancel_allowed_while_not_shipped(self, status):
        result = next_status(
            status, ACTION_CANCEL, 'buyer', policy=CancelPolicy.IMMEDIATE)
        assert result.status == OrderStatus.CANCELLED
        assert result.escalate is False

    @pytest.mark.parametrize('status', [
        OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_cancel_rejected_after_shipping(self, status):
        with pytest.raises(OrderTransitionError):
            next_status(status, ACTION_CANCEL, 'buyer')

    def test_escalate_processing_policy(self):
        pending = next_status(
            OrderStatus.PENDING, ACTION_CANCEL, 'buyer',
            policy=CancelPolicy.ESCALATE_PROCESSING)
        processing = next_status(
            OrderStatus.PROCESSING, ACTION_CANCEL, 'buyer',
            policy=CancelPolicy.ESCALATE_PROCESSING)
        assert pending == (OrderStatus.CANCELLED, False)
        assert processing == (OrderStatus.PROCESSING, True)

    def test_escalate_policy_keeps_status(self):
        result = next_status(
            OrderStatus.PENDING, ACTION_CANCEL, 'buyer',
            policy=CancelPolicy.ESCALATE)
        assert result == (OrderStatus.PENDING, True)

    def test_unknown_policy_rejected(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PENDING, ACTION_CANCEL, 'buyer', policy='never')

    def test_cancel_rejected_while_approval_pending(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PROCESSING, ACTION_CANCEL, 'buyer',
                approval_pending=True)

    def test_approval_outcomes(self):
        approved = next_status(
            OrderStatus.PROCESSING, ACTION_APPROVE_CANCELLATION, 'admin',
            approval_pending=True, approved=True)
        rejected = next_status(
            OrderStatus.PROCESSING, ACTION_APPROVE_CANCELLATION, 'admin',
            approval_pending=True, approved=False)
        assert approved.status == OrderStatus.CANCELLED
        assert rejected.status == OrderStatus.PROCESSING

    def test_approval_requires_pending_flag_and_decision(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PROCESSING, ACTION_APPROVE_CANCELLATION,
                'admin', approval_pending=False, approved=True)
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PROCESSING, ACTION_APPROVE_CANCELLATION,
                'admin', approval_pending=True, approved=None)

    def test_set_status_blocked_while_approval_pending(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PROCESSING, ACTION_SET_STATUS, 'admin',
                approval_pending=True, requested='shipped')

    def test_set_status_rejects_unknown_value(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PENDING, ACTION_SET_STATUS, 'admin',
                requested='lost')

    def test_admin_only_actions(self):
        for action in (ACTION_SET_STATUS, ACTION_ADMIN_CANCEL):
            with pytest.raises(OrderPermissionError):
                next_status(
                    OrderStatus.PENDING, action, 'seller',
                    requested='shipped')

    def test_admin_cancel_rules(self):
        assert next_status(
            OrderStatus.PROCESSING, ACTION_ADMIN_CANCEL, 'admin',
            approval_pending=True).status == OrderStatus.CANCELLED
        with pytest.raises(OrderTransitionError):
            next_status(OrderStatus.SHIPPED, ACTION_ADMIN_CANCEL, 'admin')

    def test_seller_cannot_cancel(self):
        with pytest.raises(OrderTransitionError):
            next_status(
                OrderStatus.PENDING, ACTION_SELLER_UPDATE, 'seller',
                requested='cancelled')
        assert next_status(
            OrderStatus.PENDING, ACTION_SELLER_UPDATE, 'seller',
            requested='shipped').status == OrderStatus.SHIPPED


class TestCancelOrder:

    def test_pending_order_cancels_immediately(
            self, make_order, buyer, product, relay):
        order = make_order(OrderStatus.PENDING, quantity=2)
        assert product.stock == 8

        cancel_order(order, buyer, 'changed my mind')

        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at is not None
        assert order.cancellation_reason == 'changed my mind'
        assert order.admin_approval_required is False
        rows = history(order)
        assert len(rows) == 1
        assert rows[0].status == OrderStatus.CANCELLED
        assert product.stock == 10
        assert relay.channels_for('order-status') == {
            f'user-{buyer.id}', f'user-{product.seller_id}'}

    def test_processing_order_is_escalated(self, make_order, buyer, admin,
                                           product, relay):
        order = make_order(OrderStatus.PROCESSING)

        cancel_order(order, buyer, 'too slow')

        assert order.status == OrderStatus.PROCESSING
        assert order.admin_approval_required is True
        assert order.cancelled_at is None
        rows = history(order)
        assert len(rows) == 1
        assert rows[0].status == OrderStatus.PROCESSING
        assert product.stock == 8
        admin_notes = Notification.query.filter_by(user_id=admin.id).all()
        assert [n.type for n in admin_notes] == [
            NotificationType.ADMIN_ACTION_REQUIRED]
        assert f'user-{admin.id}' in relay.channels_for('notification')

    def test_shipped_order_rejected_without_side_effects(
            self, make_order, buyer, relay):
        order = make_order(OrderStatus.SHIPPED)

        with pytest.raises(OrderTransitionError):
            cancel_order(order, buyer, 'please')
        db.session.rollback()

        assert order.status == OrderStatus.SHIPPED
        assert order.cancellation_reason is None
        assert history(order) == []
        assert relay.events == []

    def test_reason_is_required(self, make_order, buyer):
        order = make_order(OrderStatus.PENDING)
        with pytest.raises(OrderTransitionError):
            cancel_order(order, buyer, '   ')
        assert order.status == OrderStatus.PENDING
        assert history(order) == []

    def test_immediate_policy_override(self, make_order, buyer):
        order = make_order(OrderStatus.PROCESSING)
        cancel_order(order, buyer, 'oops', policy=CancelPolicy.IMMEDIATE)
        assert order.status == OrderStatus.CANCELLED

    def test_audit_row_written(self, make_order, buyer):
        order = make_order(OrderStatus.PENDING)
        cancel_order(order, buyer, 'changed my mind')
        audit = AuditLog.query.filter_by(
            action='ORDER_CANCEL_BUYER', target_id=order.id).one()
        assert audit.actor_id == buyer.id
        assert audit.get_payload()['reason'] == 'changed my mind'


class TestDecideCancellation:

    def test_approve(self, make_order, buyer, admin, product):
        order = make_order(OrderStatus.PROCESSING)
        cancel_order(order, buyer, 'too slow')

        decide_cancellation(order, admin, True)

        assert order.status == OrderStatus.CANCELLED
        assert order.admin_approval_required is False
        assert order.cancelled_at is not None
        assert product.stock == 10
        rows = history(order)
        assert len(rows) == 2
        assert rows[-1].status == OrderStatus.CANCELLED

    def test_reject_keeps_prior_status(self, make_order, buyer, admin,
                                       product):
        order = make_order(OrderStatus.PROCESSING)
        cancel_order(order, buyer, 'too slow')

        decide_cancellation(order, admin, False)

        assert order.status == OrderStatus.PROCESSING
        assert order.admin_approval_required is False
        assert order.cancelled_at is None
        assert product.stock == 8
        rows = history(order)
        assert len(rows) == 2
        assert rows[-1].status == OrderStatus.PROCESSING

    def test_nothing_to_decide(self, make_order, admin):
        order = make_order(OrderStatus.PROCESSING)
        with pytest.raises(OrderTransitionError):
            decide_cancellation(order, admin, True)
        assert history(order) == []


class TestAdminAndSellerUpdates:

    def test_set_status_appends_history(self, make_order, admin):
        order = make_order(OrderStatus.PENDING)
        set_order_status(order, admin, 'shipped')
        assert order.status == OrderStatus.SHIPPED
        assert [r.status for r in history(order)] == [OrderStatus.SHIPPED]

    def test_set_status_rejected_while_pending_approval(
            self, make_order, buyer, admin):
        order = make_order(OrderStatus.PROCESSING)
        cancel_order(order, buyer, 'too slow')
        with pytest.raises(OrderTransitionError):
            set_order_status(order, admin, 'shipped')
        db.session.rollback()
        assert order.status == OrderStatus.PROCESSING
        assert len(history(order)) == 1

    def test_set_status_to_cancelled_restores_stock(
            self, make_order, admin, product):
        order = make_order(OrderStatus.PROCESSING, quantity=3)
        set_order_status(order, admin, 'cancelled')
        assert product.stock == 10
        assert order.cancelled_at is not None

    def test_reopen_cancelled_order_reserves_stock(
            self, make_order, admin, product):
        order = make_order(OrderStatus.PROCESSING, quantity=3)
        set_order_status(order, admin, 'cancelled')
        assert product.stock == 10

        set_order_status(order, admin, 'pending')

        assert order.status == OrderStatus.PENDING
        assert order.cancelled_at is None
        assert product.stock == 7
        assert [r.status for r in history(order)] == [
            OrderStatus.CANCELLED, OrderStatus.PENDING]

    def test_reopen_without_stock_changes_nothing(
            self, make_order, admin, product):
        order = make_order(OrderStatus.PROCESSING, quantity=3)
        set_order_status(order, admin, 'cancelled')
        product.stock = 2
        db.session.commit()
        cancelled_at = order.cancelled_at

        with pytest.raises(OrderTransitionError) as exc:
            set_order_status(order, admin, 'pending')
        db.session.rollback()

        assert exc.value.status_code == 400
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at == cancelled_at
        assert product.stock == 2
        assert len(history(order)) == 1

    def test_admin_cancel_resolves_pending_request(
            self, make_order, buyer, admin, product):
        order = make_order(OrderStatus.PROCESSING)
        cancel_order(order, buyer, 'too slow')

        admin_cancel_order(order, admin, 'out of stock')

        assert order.status == OrderStatus.CANCELLED
        assert order.admin_approval_required is False
        assert order.cancellation_reason == 'out of stock'
        assert product.stock == 10

    def test_admin_cancel_rejects_delivered(self, make_order, admin):
        order = make_order(OrderStatus.DELIVERED)
        with pytest.raises(OrderTransitionError):
            admin_cancel_order(order, admin)
        assert history(order) == []

    def test_seller_progresses_own_order(self, make_order, seller):
        order = make_order(OrderStatus.PENDING)
        seller_update_status(order, seller, 'processing')
        seller_update_status(order, seller, 'shipped')
        assert order.status == OrderStatus.SHIPPED
        assert [r.status for r in history(order)] == [
            OrderStatus.PROCESSING, OrderStatus.SHIPPED]

    def test_seller_must_own_a_line_item(self, make_order, db_session):
        stranger = User(email='stranger@example.com', role=UserRole.SELLER)
        stranger.set_password('x' * 8)
        db_session.add(stranger)
        db_session.commit()

        order = make_order(OrderStatus.PENDING)
        with pytest.raises(OrderPermissionError):
            seller_update_status(order, stranger, 'processing')
