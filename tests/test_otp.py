from datetime import datetime, timedelta

import pytest

from lawlaw.extensions import db
from lawlaw.models import Otp
from lawlaw.services.otp_service import (
    OtpAttemptsExceeded,
    OtpCooldown,
    OtpExpired,
    OtpInvalidCode,
    OtpNotFound,
    OtpUserNotFound,
    issue_otp,
    verify_otp)


def current_otp(email):
    return Otp.query.filter_by(email=email).first()


def wrong_code(code):
    return '000000' if code != '000000' else '111111'


class TestOtpService:

    def test_issue_creates_six_digit_code(self, buyer):
        otp = issue_otp(buyer.email)
        assert len(otp.code) == 6 and otp.code.isdigit()
        remaining = otp.expires_at - datetime.utcnow()
        assert timedelta(minutes=4) < remaining <= timedelta(minutes=5)

    def test_issue_replaces_previous_codes(self, buyer):
        issue_otp(buyer.email)
        issue_otp(buyer.email)
        assert Otp.query.filter_by(email=buyer.email).count() == 1

    def test_issue_unknown_user(self, db_session):
        with pytest.raises(OtpUserNotFound) as exc:
            issue_otp('nobody@example.com')
        assert exc.value.status_code == 404

    def test_resend_cooldown(self, app, buyer):
        app.config['OTP_RESEND_COOLDOWN_SECONDS'] = 60
        issue_otp(buyer.email)
        with pytest.raises(OtpCooldown) as exc:
            issue_otp(buyer.email)
        assert exc.value.status_code == 409

    def test_verify_success(self, buyer):
        buyer.email_verified = False
        db.session.commit()
        otp = issue_otp(buyer.email)

        user = verify_otp(buyer.email, otp.code)

        assert user.email_verified is True
        assert current_otp(buyer.email) is None

    def test_verify_without_code_on_file(self, buyer):
        with pytest.raises(OtpNotFound):
            verify_otp(buyer.email, '123456')

    def test_expired_code_is_deleted(self, buyer):
        otp = issue_otp(buyer.email)
        otp.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

        with pytest.raises(OtpExpired):
            verify_otp(buyer.email, otp.code)
        assert current_otp(buyer.email) is None

    def test_wrong_code_counts_attempts(self, buyer):
        otp = issue_otp(buyer.email)
        with pytest.raises(OtpInvalidCode) as exc:
            verify_otp(buyer.email, wrong_code(otp.code))
        assert exc.value.remaining_attempts == 4
        assert current_otp(buyer.email).attempts == 1

    def test_sixth_attempt_fails_even_with_right_code(self, buyer):
        otp = issue_otp(buyer.email)
        code = otp.code
        for _ in range(5):
            with pytest.raises(OtpInvalidCode):
                verify_otp(buyer.email, wrong_code(code))

        with pytest.raises(OtpAttemptsExceeded) as exc:
            verify_otp(buyer.email, code)
        assert exc.value.status_code == 429
        assert current_otp(buyer.email) is None


class TestOtpEndpoints:

    def test_send_and_verify(self, client, buyer):
        response = client.post(
            '/api/auth/otp/send', json={'email': buyer.email})
        assert response.status_code == 200
        code = current_otp(buyer.email).code

        response = client.post(
            '/api/auth/otp/verify',
            json={'email': buyer.email, 'code': code})
        assert response.status_code == 200
        assert response.get_json()['email_verified'] is True

    def test_send_unknown_email(self, client, db_session):
        response = client.post(
            '/api/auth/otp/send', json={'email': 'ghost@example.com'})
        assert response.status_code == 404

    def test_wrong_code_reports_remaining(self, client, buyer):
        client.post('/api/auth/otp/send', json={'email': buyer.email})
        code = current_otp(buyer.email).code

        response = client.post(
            '/api/auth/otp/verify',
            json={'email': buyer.email, 'code': wrong_code(code)})
        assert response.status_code == 400
        assert response.get_json()['remaining_attempts'] == 4

    def test_attempt_limit_returns_429(self, client, buyer):
        client.post('/api/auth/otp/send', json={'email': buyer.email})
        code = current_otp(buyer.email).code
        for _ in range(5):
            client.post(
                '/api/auth/otp/verify',
                json={'email': buyer.email, 'code': wrong_code(code)})

        response = client.post(
            '/api/auth/otp/verify',
            json={'email': buyer.email, 'code': code})
        assert response.status_code == 429
        assert current_otp(buyer.email) is None
