"""Supabase Auth (GoTrue) REST client.

Sign-up, sign-in, refresh and sign-out are made with the anon key. The
admin endpoints need the service-role key; without it they raise
``AdminUnavailableError`` so callers can answer 503.
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import Any, Dict, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class SupabaseAuthError(Exception):
    """A GoTrue call failed."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AdminUnavailableError(SupabaseAuthError):
    def __init__(self):
        super().__init__('Admin user creation unavailable: service-role key is not configured', 503)


def _base_url() -> str:
    url = (current_app.config.get('SUPABASE_URL') or '').rstrip('/')
    if not url:
        raise SupabaseAuthError('Supabase is not configured', 503)
    return f"{url}/auth/v1"


def _anon_headers(access_token: Optional[str] = None) -> Dict[str, str]:
    key = current_app.config.get('SUPABASE_ANON_KEY') or ''
    return {
        'apikey': key,
        'Authorization': f"Bearer {access_token or key}",
        'Content-Type': 'application/json',
    }


def _service_headers() -> Dict[str, str]:
    key = current_app.config.get('SUPABASE_SERVICE_KEY')
    if not key:
        raise AdminUnavailableError()
    return {
        'apikey': key,
        'Authorization': f"Bearer {key}",
        'Content-Type': 'application/json',
    }


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    return (
        body.get('error_description')
        or body.get('msg')
        or body.get('message')
        or body.get('error')
        or f"HTTP {response.status_code}"
    )


def _call(method: str, path: str, headers: Dict[str, str], payload: Optional[dict] = None,
          params: Optional[dict] = None) -> Dict[str, Any]:
    timeout = int(current_app.config.get('SUPABASE_REQUEST_TIMEOUT', 30))
    try:
        response = requests.request(
            method, f"{_base_url()}{path}", headers=headers, json=payload, params=params, timeout=timeout
        )
    except requests.exceptions.Timeout as e:
        raise SupabaseAuthError('Authentication service timed out', 504) from e
    except requests.exceptions.RequestException as e:
        logger.error("Supabase auth request failed: %s", e)
        raise SupabaseAuthError('Authentication service unavailable', 502) from e

    if response.status_code >= 400:
        raise SupabaseAuthError(_error_message(response), response.status_code)
    if response.status_code == 204 or not response.content:
        return {}
    return response.json()


def sign_up(email: str, password: str, metadata: Optional[dict] = None) -> Dict[str, Any]:
    return _call('POST', '/signup', _anon_headers(), {'email': email, 'password': password, 'data': metadata or {}})


def sign_in_with_password(email: str, password: str) -> Dict[str, Any]:
    """Returns the session: access_token, refresh_token, expires_in, user."""
    return _call(
        'POST', '/token', _anon_headers(),
        {'email': email, 'password': password},
        params={'grant_type': 'password'},
    )


def refresh_session(refresh_token: str) -> Dict[str, Any]:
    return _call(
        'POST', '/token', _anon_headers(),
        {'refresh_token': refresh_token},
        params={'grant_type': 'refresh_token'},
    )


def sign_out(access_token: str) -> None:
    _call('POST', '/logout', _anon_headers(access_token))


def update_password(access_token: str, new_password: str) -> Dict[str, Any]:
    return _call('PUT', '/user', _anon_headers(access_token), {'password': new_password})


def admin_create_user(email: str, password: str, metadata: Optional[dict] = None) -> Dict[str, Any]:
    """Create a confirmed auth user. Returns the GoTrue user object (with 'id')."""
    return _call('POST', '/admin/users', _service_headers(), {
        'email': email,
        'password': password,
        'email_confirm': True,
        'user_metadata': metadata or {},
    })


def admin_delete_user(user_id: str) -> None:
    _call('DELETE', f'/admin/users/{user_id}', _service_headers())


def generate_temporary_password(length: int = 12) -> str:
    """Random password with at least one upper, lower and digit."""
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = ''.join(secrets.choice(alphabet) for _ in range(length))
        if (any(c.islower() for c in candidate)
                and any(c.isupper() for c in candidate)
                and any(c.isdigit() for c in candidate)):
            return candidate
