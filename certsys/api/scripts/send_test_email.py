"""
Send the CertSys test email to verify EMAIL_API_KEY and FROM_EMAIL.

Usage:
    python certsys/api/scripts/send_test_email.py you@example.com
"""
import os
import sys

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    from certsys.api.app import create_app
    from certsys.api.utils.email_sender import send_test_email

    app = create_app()
    with app.app_context():
        print(f"Email API: {app.config.get('EMAIL_API_URL')}")
        print(f"From: {app.config.get('FROM_NAME')} <{app.config.get('FROM_EMAIL') or 'NOT SET'}>")
        result = send_test_email(sys.argv[1])

    if result.success:
        print(f"Sent (message id: {result.message_id})")
    else:
        print(f"Failed: {result.error}")
        sys.exit(1)


if __name__ == '__main__':
    main()
