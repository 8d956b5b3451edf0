"""Transactional email sending.

Messages go to a single bearer-key HTTP endpoint (Resend-compatible)
that accepts ``{from, to, subject, html}``. Bodies are Jinja2 templates
under ``templates/email``.

Sending never raises: callers get an ``EmailResult`` and decide what to do
(registration approval, for instance, hands the temporary password back
to the chairman when the email fails).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests
from flask import current_app, render_template

from certsys.api.utils.time import utc_now


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self):
        return {'success': self.success, 'error': self.error, 'message_id': self.message_id}


def _sender() -> str:
    from_email = current_app.config.get('FROM_EMAIL')
    from_name = current_app.config.get('FROM_NAME') or current_app.config.get('APP_NAME', 'Luna CERTSYS')
    return f"{from_name} <{from_email}>"


def send_email(to_email: str, subject: str, html: str, from_email: Optional[str] = None) -> EmailResult:
    """POST one message to the email API."""
    app = current_app
    api_key = app.config.get('EMAIL_API_KEY')
    url = app.config.get('EMAIL_API_URL')

    if not api_key:
        return EmailResult(False, 'EMAIL_API_KEY is not configured')
    if not (from_email or app.config.get('FROM_EMAIL')):
        return EmailResult(False, 'FROM_EMAIL is not configured')

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "from": from_email or _sender(),
        "to": [to_email],
        "subject": subject,
        "html": html,
    }

    app.logger.info(f"Attempting to send email to {to_email}")

    try:
        response = requests.post(url, headers=headers, json=payload,
                                 timeout=app.config.get('EMAIL_TIMEOUT_SECONDS', 30))
    except requests.exceptions.Timeout:
        app.logger.error(f"Email API timed out sending to {to_email}")
        return EmailResult(False, 'Email service timed out')
    except requests.exceptions.RequestException as e:
        app.logger.error(f"Email API request failed: {e}")
        return EmailResult(False, f'Email API request failed: {e}')

    if response.status_code not in (200, 201, 202):
        error_msg = f"Email API error: {response.status_code}"
        try:
            body = response.json()
            error_msg += f" - {body.get('message') or body.get('error') or body}"
        except ValueError:
            error_msg += f" - {response.text[:200]}"
        app.logger.error(error_msg)
        return EmailResult(False, error_msg)

    message_id = None
    try:
        message_id = (response.json() or {}).get('id')
    except ValueError:
        pass
    app.logger.info(f"Email sent successfully to {to_email}")
    return EmailResult(True, message_id=message_id)


def send_password_email(to_email: str, full_name: str, temporary_password: str) -> EmailResult:
    """Registration-approved email carrying the temporary password."""
    app_name = current_app.config.get('APP_NAME', 'Luna CERTSYS')
    html = render_template(
        'email/registration_approved.html',
        app_name=app_name,
        full_name=full_name,
        email=to_email,
        temporary_password=temporary_password,
        login_url=current_app.config.get('WEB_URL'),
        year=utc_now().year,
    )
    return send_email(to_email, f"✓ Your {app_name} Account is Approved! \U0001F389", html)


def send_test_email(to_email: str) -> EmailResult:
    """Send a test message to verify the email configuration."""
    app_name = current_app.config.get('APP_NAME', 'Luna CERTSYS')
    html = render_template(
        'email/test_email.html',
        app_name=app_name,
        sent_at=utc_now().strftime('%B %d, %Y %H:%M UTC'),
        year=utc_now().year,
    )
    return send_email(to_email, f"Test Email from {app_name}", html)
