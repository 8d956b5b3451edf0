#!/usr/bin/env python3
"""
Barangay Luna CertSys account setup script

Creates a Supabase auth user and its profile row. Used for the first admin
and for purok chairmen (residents register themselves).

Usage (interactive):
    python certsys/api/scripts/create_admin.py

Usage (non-interactive):
    python certsys/api/scripts/create_admin.py --email admin@example.com --name "Juan Dela Cruz"
    python certsys/api/scripts/create_admin.py --role purok_chairman --purok "Purok 3" \
        --email chair3@example.com --name "Maria Santos"

When no password is given a temporary one is generated and printed once.
Requires SUPABASE_URL and SUPABASE_SERVICE_KEY.
"""
import os
import sys
import argparse
import getpass

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from dotenv import load_dotenv
load_dotenv(os.path.join(project_root, '.env'))


def main():
    parser = argparse.ArgumentParser(description='Create a CertSys admin or purok chairman account')
    parser.add_argument('--email', '-e', help='Account email address')
    parser.add_argument('--name', '-n', help='Full name')
    parser.add_argument('--password', '-p', help='Password (generated when omitted)')
    parser.add_argument('--role', choices=('admin', 'purok_chairman'), default='admin')
    parser.add_argument('--purok', help='Purok (purok chairmen only)')
    parser.add_argument('--phone', help='Phone number (09XXXXXXXXX)')
    args = parser.parse_args()

    from certsys.api import db
    from certsys.api.app import create_app
    from certsys.api.models.user import User
    from certsys.api.utils.supabase_auth import (
        SupabaseAuthError,
        admin_create_user,
        admin_delete_user,
        generate_temporary_password,
    )
    from certsys.api.utils.validators import ValidationError, validate_email, validate_password, validate_phone

    print("\n" + "=" * 50)
    print(f"  CertSys {args.role.replace('_', ' ')} account setup")
    print("=" * 50 + "\n")

    interactive = not args.email
    email = args.email or input("Email: ").strip()
    full_name = args.name or input("Full name: ").strip()
    password = args.password
    if password is None and interactive:
        password = getpass.getpass("Password (leave blank to generate): ") or None

    try:
        email = validate_email(email)
        if password:
            validate_password(password)
        phone = validate_phone(args.phone) if args.phone else None
    except ValidationError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    if not full_name:
        print("Error: full name is required")
        sys.exit(1)
    if args.role == 'purok_chairman' and not args.purok:
        print("Error: --purok is required for purok chairmen")
        sys.exit(1)

    generated = password is None
    password = password or generate_temporary_password()

    app = create_app()
    with app.app_context():
        if User.query.filter(db.func.lower(User.email) == email).first():
            print(f"Error: a profile for {email} already exists")
            sys.exit(1)

        try:
            auth_user = admin_create_user(email, password, {'full_name': full_name, 'role': args.role})
        except SupabaseAuthError as e:
            print(f"Error creating auth user: {e.message} (HTTP {e.status_code})")
            sys.exit(1)

        user = User(
            id=auth_user['id'],
            email=email,
            full_name=full_name,
            role=args.role,
            purok=args.purok,
            phone_number=phone,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            admin_delete_user(auth_user['id'])
            print(f"Error saving profile, auth user removed: {e}")
            sys.exit(1)
        user_id = user.id

    print(f"\nCreated {args.role} {full_name} <{email}> ({user_id})")
    if generated:
        print(f"Temporary password: {password}")
        print("Share it securely; it is not stored anywhere.")


if __name__ == '__main__':
    main()
