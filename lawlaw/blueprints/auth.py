from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import User, UserRole
from lawlaw.services.audit_service import log_audit
from lawlaw.services.otp_service import (
    OtpError,
    issue_otp,
    normalize_email,
    verify_otp)
from lawlaw.utils import user_to_dict
from datetime import datetime
import logging
import re

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6
# Admins are created through `flask seed` or by another admin
SELF_REGISTER_ROLES = ('buyer', 'seller')


@bp.route('/api/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''
    name = (data.get('name') or '').strip() or None
    role = (data.get('role') or 'buyer').strip().lower()

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400
    if not EMAIL_RE.match(email):
        return jsonify({'error': 'Invalid email address'}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({
            'error': f'Password must be at least {MIN_PASSWORD_LENGTH} '
                     'characters'}), 400
    if role not in SELF_REGISTER_ROLES:
        return jsonify({'error': 'Invalid role'}), 400

    # Check if email already exists
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    user = User(email=email, name=name, role=UserRole(role))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    log_audit(
        actor_id=user.id,
        actor_role=user.role.value,
        action='REGISTER',
        target_type='USER',
        target_id=user.id,
        payload={'role': role}
    )

    login_user(user, remember=True)
    return jsonify({'ok': True, 'user': user_to_dict(user)}), 201


@bp.route('/api/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400

    user = User.query.filter_by(email=email).first()

    if user and user.check_password(password) and user.is_active:
        login_user(user, remember=True)
        user.last_login_at = datetime.utcnow()
        db.session.commit()

        log_audit(
            actor_id=user.id,
            actor_role=user.role.value,
            action='LOGIN_SUCCESS',
            target_type='USER',
            target_id=user.id,
        )
        return jsonify({'ok': True, 'user': user_to_dict(user)})

    reason = 'user_not_found'
    if user and not user.is_active:
        reason = 'blocked'
    elif user:
        reason = 'invalid_credentials'
    log_audit(
        actor_id=None,
        actor_role='ANONYMOUS',
        action='LOGIN_FAILED',
        target_type='USER',
        target_id=None,
        payload={'reason': reason})

    if reason == 'blocked':
        return jsonify({'error': 'Account is blocked'}), 403
    return jsonify({'error': 'Invalid email or password'}), 401


@bp.route('/api/auth/logout', methods=['POST'])
@login_required
def logout():
    user_id = current_user.id
    role = current_user.role.value
    logout_user()
    log_audit(
        actor_id=user_id,
        actor_role=role,
        action='LOGOUT',
        target_type='USER',
        target_id=user_id,
    )
    return jsonify({'ok': True})


@bp.route('/api/auth/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': user_to_dict(current_user)})


@bp.route('/api/auth/otp/send', methods=['POST'])
def send_otp():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    try:
        otp = issue_otp(email)
    except OtpError as e:
        return jsonify(e.to_dict()), e.status_code

    log_audit(
        actor_role='ANONYMOUS',
        action='OTP_SENT',
        target_type='OTP',
        target_id=otp.id,
        payload={'email': otp.email},
    )
    return jsonify({
        'ok': True,
        'message': 'Verification code sent',
        'expires_at': otp.expires_at.isoformat(),
    })


@bp.route('/api/auth/otp/verify', methods=['POST'])
def verify():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get('email'))
    code = data.get('code')
    if code is not None and not isinstance(code, str):
        code = str(code)
    try:
        user = verify_otp(email, code)
    except OtpError as e:
        log_audit(
            actor_role='ANONYMOUS',
            action='OTP_VERIFY_FAILED',
            target_type='OTP',
            payload={'email': email, 'reason': type(e).__name__},
        )
        return jsonify(e.to_dict()), e.status_code

    log_audit(
        actor_id=user.id,
        actor_role=user.role.value,
        action='OTP_VERIFIED',
        target_type='USER',
        target_id=user.id,
    )
    return jsonify({'ok': True, 'email_verified': True})
