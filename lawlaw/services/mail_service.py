from flask import current_app
import logging

import resend

logger = logging.getLogger(__name__)


def init_mail(app):
    """Configure the Resend client once per process."""
    api_key = (app.config.get('RESEND_API_KEY') or '').strip()
    if api_key:
        resend.api_key = api_key
    else:
        logger.info("RESEND_API_KEY not set, mail goes to the log")


def send_email(to: str, subject: str, html: str, text: str = None) -> bool:
    """Send a transactional mail through Resend.

    Without RESEND_API_KEY the mail is written to the log instead, which is
    what development and tests rely on.
    """
    api_key = (current_app.config.get('RESEND_API_KEY') or '').strip()
    if not api_key:
        logger.info(
            "Mail disabled, would send to=%s subject=%r text=%r",
            to,
            subject,
            text or html)
        return False

    payload = {
        'from': current_app.config['MAIL_SENDER'],
        'to': [to],
        'subject': subject,
        'html': html,
    }
    if text:
        payload['text'] = text

    try:
        response = resend.Emails.send(payload)
    except Exception as e:
        logger.error(f"Failed to send mail to {to}: {e}", exc_info=True)
        return False

    if not isinstance(response, dict) or not response.get('id'):
        logger.error("Unexpected Resend response for %s: %r", to, response)
        return False
    return True


def send_otp_email(to: str, code: str, ttl_minutes: int) -> bool:
    subject = 'Your Lawlaw Delights verification code'
    text = (
        f'Your verification code is {code}. '
        f'It expires in {ttl_minutes} minutes.'
    )
    html = (
        '<p>Your Lawlaw Delights verification code is</p>'
        f'<p style="font-size:24px;letter-spacing:4px"><b>{code}</b></p>'
        f'<p>It expires in {ttl_minutes} minutes.</p>'
    )
    return send_email(to, subject, html, text)


def send_order_status_email(to: str, order_id: int, status: str) -> bool:
    subject = f'Order #{order_id} is now {status}'
    text = f'Your order #{order_id} status changed to {status}.'
    html = f'<p>Your order <b>#{order_id}</b> status changed to <b>{status}</b>.</p>'
    return send_email(to, subject, html, text)


def send_seller_application_email(to: str, name: str, business_name: str,
                                  approved: bool) -> bool:
    if approved:
        subject = 'Your seller application was approved'
        text = (
            f'Hi {name}, your seller application for "{business_name}" '
            'has been approved. You can now start selling your products.'
        )
    else:
        subject = 'Your seller application was not approved'
        text = (
            f'Hi {name}, your seller application for "{business_name}" '
            'was not approved. You may update it and apply again.'
        )
    return send_email(to, subject, f'<p>{text}</p>', text)
