from lawlaw.extensions import db
from lawlaw.models import Otp, User
from lawlaw.services.mail_service import send_otp_email
from flask import current_app
from datetime import datetime, timedelta
import logging
import secrets
import string

logger = logging.getLogger(__name__)


class OtpError(ValueError):
    status_code = 400

    def __init__(self, message, remaining_attempts=None):
        super().__init__(message)
        self.remaining_attempts = remaining_attempts

    def to_dict(self):
        body = {'error': str(self)}
        if self.remaining_attempts is not None:
            body['remaining_attempts'] = self.remaining_attempts
        return body


class OtpUserNotFound(OtpError):
    status_code = 404


class OtpNotFound(OtpError):
    status_code = 404


class OtpExpired(OtpError):
    status_code = 400


class OtpInvalidCode(OtpError):
    status_code = 400


class OtpCooldown(OtpError):
    status_code = 409


class OtpAttemptsExceeded(OtpError):
    status_code = 429


def normalize_email(email) -> str:
    return (email or '').strip().lower()


def generate_code(length: int) -> str:
    return ''.join(secrets.choice(string.digits) for _ in range(length))


def _latest_otp(email):
    return Otp.query.filter_by(email=email).order_by(
        Otp.created_at.desc(), Otp.id.desc()).first()


def issue_otp(email: str) -> Otp:
    email = normalize_email(email)
    if not email:
        raise OtpError('Email is required')

    user = User.query.filter_by(email=email).first()
    if not user:
        raise OtpUserNotFound('User not found')

    now = datetime.utcnow()
    cooldown = current_app.config.get('OTP_RESEND_COOLDOWN_SECONDS', 0)
    previous = _latest_otp(email)
    if previous and cooldown > 0:
        elapsed = (now - previous.created_at).total_seconds()
        if elapsed < cooldown:
            wait = int(cooldown - elapsed) + 1
            raise OtpCooldown(
                f'A code was sent recently, try again in {wait} seconds')

    # Only one live code per email
    Otp.query.filter_by(email=email).delete()

    ttl = current_app.config.get('OTP_TTL_MINUTES', 5)
    otp = Otp(
        email=email,
        code=generate_code(current_app.config.get('OTP_LENGTH', 6)),
        expires_at=now + timedelta(minutes=ttl),
        created_at=now,
    )
    db.session.add(otp)
    db.session.commit()

    send_otp_email(email, otp.code, ttl)
    logger.info("OTP issued for %s, expires %s", email, otp.expires_at)
    return otp


def verify_otp(email: str, code: str) -> User:
    email = normalize_email(email)
    code = (code or '').strip()
    if not email or not code:
        raise OtpError('Email and code are required')

    otp = _latest_otp(email)
    if not otp:
        raise OtpNotFound('No verification code found, request a new one')

    if datetime.utcnow() > otp.expires_at:
        db.session.delete(otp)
        db.session.commit()
        raise OtpExpired('Verification code has expired')

    max_attempts = current_app.config.get('OTP_MAX_ATTEMPTS', 5)
    if otp.attempts >= max_attempts:
        db.session.delete(otp)
        db.session.commit()
        raise OtpAttemptsExceeded(
            'Too many failed attempts, request a new code')

    if not secrets.compare_digest(otp.code, code):
        otp.attempts += 1
        db.session.commit()
        remaining = max(max_attempts - otp.attempts, 0)
        raise OtpInvalidCode(
            'Invalid verification code', remaining_attempts=remaining)

    user = User.query.filter_by(email=email).first()
    if not user:
        db.session.delete(otp)
        db.session.commit()
        raise OtpUserNotFound('User not found')

    user.email_verified = True
    db.session.delete(otp)
    db.session.commit()
    logger.info("Email verified for %s", email)
    return user
