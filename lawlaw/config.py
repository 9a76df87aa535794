import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or (
        'dev-secret-key-change-in-production'
    )
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or (
        'sqlite:///lawlaw.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pagination configuration
    ITEMS_PER_PAGE = 20

    # Buyer cancellation policy:
    #   immediate           - always cancel right away
    #   escalate            - always wait for admin approval
    #   escalate_processing - pending cancels, processing needs approval
    ORDER_CANCEL_POLICY = os.environ.get(
        'ORDER_CANCEL_POLICY', 'escalate_processing'
    ).strip().lower()

    # Real-time relay (Redis pub/sub). Empty URL disables publishing.
    RELAY_URL = os.environ.get('RELAY_URL', '')
    RELAY_CHANNEL_PREFIX = os.environ.get('RELAY_CHANNEL_PREFIX', 'user-')

    # Transactional mail via Resend.
    # Without an API key mails are written to the log instead.
    RESEND_API_KEY = os.environ.get('RESEND_API_KEY', '')
    MAIL_SENDER = os.environ.get(
        'MAIL_SENDER', 'Lawlaw Delights <no-reply@lawlawdelights.ph>'
    )

    # OTP email verification
    OTP_LENGTH = 6
    OTP_TTL_MINUTES = int(os.environ.get('OTP_TTL_MINUTES', '5'))
    OTP_MAX_ATTEMPTS = 5
    OTP_RESEND_COOLDOWN_SECONDS = int(
        os.environ.get('OTP_RESEND_COOLDOWN_SECONDS', '60')
    )


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    RELAY_URL = ''
    RESEND_API_KEY = ''
    ORDER_CANCEL_POLICY = 'escalate_processing'
    OTP_RESEND_COOLDOWN_SECONDS = 0
