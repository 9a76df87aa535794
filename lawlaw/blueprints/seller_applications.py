from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.middleware import role_required
from lawlaw.models import (
    ApplicationStatus,
    NotificationType,
    SellerApplication,
    UserRole)
from lawlaw.services.audit_service import log_audit
from lawlaw.services.mail_service import send_seller_application_email
from lawlaw.services.notification_service import (
    add_notification,
    notify_admins,
    relay_notifications)
from lawlaw.utils import (
    page_args,
    pagination_meta,
    seller_application_to_dict)
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('seller_applications', __name__)

APPLICATION_FIELDS = {
    'business_name': 200,
    'business_type': 100,
    'description': 5000,
    'contact_number': 20,
    'address': 1000,
}


def _parse_application(data):
    fields = {}
    for key, limit in APPLICATION_FIELDS.items():
        value = data.get(key)
        value = value.strip() if isinstance(value, str) else ''
        if not value:
            raise ValueError('All fields are required')
        if len(value) > limit:
            raise ValueError(f'{key} must be at most {limit} characters')
        fields[key] = value
    return fields


@bp.route('/api/seller-application', methods=['GET'])
@login_required
def my_application():
    application = SellerApplication.query.filter_by(
        user_id=current_user.id).first()
    if application is None:
        return jsonify({'has_application': False})
    return jsonify({
        'has_application': True,
        'application': seller_application_to_dict(application),
    })


@bp.route('/api/seller-application', methods=['POST'])
@login_required
@role_required('buyer')
def submit_application():
    data = request.get_json(silent=True) or {}
    try:
        fields = _parse_application(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    application = SellerApplication.query.filter_by(
        user_id=current_user.id).first()
    if application is not None \
            and application.status != ApplicationStatus.REJECTED:
        return jsonify({'error': 'You already have an application'}), 400

    # A rejected application is reopened rather than duplicated
    if application is None:
        application = SellerApplication(user_id=current_user.id)
        db.session.add(application)
    for key, value in fields.items():
        setattr(application, key, value)
    application.status = ApplicationStatus.PENDING
    application.reviewed_by = None
    application.reviewed_at = None
    application.created_at = datetime.utcnow()
    db.session.flush()

    notifications = notify_admins(
        'Seller application',
        f'{current_user.display_name} applied to sell as '
        f'"{application.business_name}".')
    db.session.commit()
    relay_notifications(notifications)

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='SELLER_APPLICATION_SUBMIT',
        target_type='SELLER_APPLICATION',
        target_id=application.id,
        payload={'business_name': application.business_name},
    )
    return jsonify({
        'ok': True,
        'application': seller_application_to_dict(application),
    }), 201


@bp.route('/api/admin/seller-applications', methods=['GET'])
@login_required
@role_required('admin')
def list_applications():
    page, per_page = page_args()
    query = SellerApplication.query

    status = request.args.get('status')
    if status:
        try:
            query = query.filter(
                SellerApplication.status == ApplicationStatus(status))
        except ValueError:
            return jsonify({'error': 'Invalid status'}), 400

    pagination = query.order_by(
        SellerApplication.created_at.desc(),
        SellerApplication.id.desc()).paginate(
            page=page, per_page=per_page, error_out=False)
    return jsonify({
        'items': [seller_application_to_dict(a) for a in pagination.items],
        **pagination_meta(pagination),
    })


@bp.route(
    '/api/admin/seller-applications/<int:application_id>',
    methods=['PATCH'])
@login_required
@role_required('admin')
def review_application(application_id):
    application = SellerApplication.query.get_or_404(application_id)
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in ('approved', 'rejected'):
        return jsonify({
            'error': 'Invalid status. Must be "approved" or "rejected".'
        }), 400
    if application.status != ApplicationStatus.PENDING:
        return jsonify({'error': 'Application was already reviewed'}), 400

    approved = status == 'approved'
    applicant = application.user
    application.status = ApplicationStatus(status)
    application.reviewed_by = current_user.id
    application.reviewed_at = datetime.utcnow()

    if approved:
        applicant.role = UserRole.SELLER
        notification = add_notification(
            applicant.id,
            'Seller application approved',
            f'Your seller application for "{application.business_name}" '
            'has been approved. You can now start selling your products.',
            NotificationType.SELLER_APPLICATION)
    else:
        notification = add_notification(
            applicant.id,
            'Seller application rejected',
            f'Your seller application for "{application.business_name}" '
            'was not approved.',
            NotificationType.SELLER_APPLICATION)
    db.session.commit()

    relay_notifications([notification])
    send_seller_application_email(
        applicant.email,
        applicant.display_name,
        application.business_name,
        approved)

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action=(
            'SELLER_APPLICATION_APPROVED' if approved
            else 'SELLER_APPLICATION_REJECTED'),
        target_type='SELLER_APPLICATION',
        target_id=application.id,
        payload={'user_id': applicant.id},
    )
    return jsonify({
        'ok': True,
        'application': seller_application_to_dict(application),
    })
