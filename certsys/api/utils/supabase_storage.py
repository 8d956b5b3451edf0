"""
Supabase Storage client utilities.

Talks to the Supabase Storage REST API directly (no supabase package needed).

Buckets:
- certificates: generated certificate PDFs (cert-<user_id>-<millis>.pdf)
- profile-photos: resident photos shown on certificates

Usage:
    from certsys.api.utils.supabase_storage import (
        upload_bytes,
        get_public_url,
        get_signed_url,
        delete_file,
    )
"""
from __future__ import annotations

import os
import uuid
import logging
from urllib.parse import urlparse, unquote
from typing import Optional, Tuple

import requests
from flask import current_app

from certsys.api.utils.time import utc_now

logger = logging.getLogger(__name__)

CERTIFICATES_BUCKET = 'certificates'
PHOTOS_BUCKET = 'profile-photos'

CONTENT_TYPE_MAP = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.pdf': 'application/pdf',
}


class SupabaseStorageError(Exception):
    """Custom exception for Supabase Storage operations."""
    pass


def _get_supabase_config() -> Tuple[str, str]:
    """Get Supabase URL and the key storage calls are made with."""
    supabase_url = current_app.config.get('SUPABASE_URL') or os.getenv('SUPABASE_URL')
    supabase_key = (
        current_app.config.get('SUPABASE_SERVICE_KEY') or
        os.getenv('SUPABASE_SERVICE_KEY') or
        current_app.config.get('SUPABASE_ANON_KEY') or
        os.getenv('SUPABASE_ANON_KEY')
    )

    if not supabase_url or not supabase_key:
        raise SupabaseStorageError(
            "Supabase credentials not configured. "
            "Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables."
        )

    return supabase_url.rstrip('/'), supabase_key


def _get_storage_bucket(bucket_override: Optional[str] = None) -> str:
    if bucket_override:
        return bucket_override
    return current_app.config.get('SUPABASE_CERTIFICATES_BUCKET') or CERTIFICATES_BUCKET


def _timeout() -> int:
    return int(current_app.config.get('SUPABASE_REQUEST_TIMEOUT', 30))


def _normalize_storage_path(storage_path: str, bucket: str) -> str:
    """Normalize a storage path (strip bucket or public URLs if provided)."""
    if not storage_path:
        return storage_path
    path = storage_path.strip()
    if path.startswith('http://') or path.startswith('https://'):
        path = urlparse(path).path
    path = unquote(path)
    path = path.lstrip('/')

    for prefix in (
        'storage/v1/object/public/',
        'storage/v1/object/sign/',
        'storage/v1/object/',
        'object/public/',
        'object/sign/',
        'object/',
    ):
        if path.startswith(prefix):
            path = path[len(prefix):]
            break

    if path.startswith(f"{bucket}/"):
        path = path[len(bucket) + 1:]

    return path


def _get_headers(service_key: str, content_type: Optional[str] = None) -> dict:
    """Get headers for Supabase REST API requests."""
    headers = {
        'Authorization': f'Bearer {service_key}',
        'apikey': service_key,
    }
    if content_type:
        headers['Content-Type'] = content_type
    return headers


def generate_unique_filename(original_filename: str, prefix: str = '') -> str:
    """
    Generate a unique filename while preserving extension.

    Args:
        original_filename: Original file name
        prefix: Optional prefix for the filename

    Returns:
        Unique filename string
    """
    _, ext = os.path.splitext(original_filename)
    ext = ext.lower()

    timestamp = utc_now().strftime('%Y%m%d_%H%M%S')
    unique_id = str(uuid.uuid4())[:8]

    if prefix:
        return f"{prefix}_{timestamp}_{unique_id}{ext}"
    return f"{timestamp}_{unique_id}{ext}"


def upload_bytes(
    data: bytes,
    storage_path: str,
    content_type: Optional[str] = None,
    bucket: Optional[str] = None,
    public: bool = True,
    upsert: bool = False,
) -> Tuple[str, Optional[str]]:
    """
    Upload raw bytes to a storage path.

    Returns:
        Tuple of (storage_path, public_url); public_url is None for private uploads

    Raises:
        SupabaseStorageError: If upload fails
    """
    if not storage_path:
        raise SupabaseStorageError("Storage path is required")
    if not data:
        raise SupabaseStorageError("Refusing to upload an empty file")

    if not content_type:
        ext = os.path.splitext(storage_path)[1].lower()
        content_type = CONTENT_TYPE_MAP.get(ext, 'application/octet-stream')

    supabase_url, service_key = _get_supabase_config()
    bucket = _get_storage_bucket(bucket)

    upload_url = f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}"
    headers = _get_headers(service_key, content_type)
    if upsert:
        headers['x-upsert'] = 'true'

    try:
        response = requests.post(upload_url, headers=headers, data=data, timeout=_timeout())
    except requests.exceptions.Timeout as e:
        raise SupabaseStorageError("Upload timed out") from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Supabase Storage upload failed: {e}")
        raise SupabaseStorageError(f"Upload failed: {e}") from e

    if response.status_code not in (200, 201):
        raise SupabaseStorageError(f"Upload failed: {response.status_code} - {response.text[:200]}")

    public_url = None
    if public:
        public_url = f"{supabase_url}/storage/v1/object/public/{bucket}/{storage_path}"

    logger.info(f"File uploaded to Supabase Storage: {bucket}/{storage_path}")
    return storage_path, public_url


def get_public_url(storage_path: str, bucket: Optional[str] = None) -> str:
    """Get the public URL for a file in a public bucket."""
    supabase_url, _ = _get_supabase_config()
    bucket = _get_storage_bucket(bucket)
    storage_path = _normalize_storage_path(storage_path, bucket)
    return f"{supabase_url}/storage/v1/object/public/{bucket}/{storage_path}"


def get_signed_url(storage_path: str, expires_in: int = 3600, bucket: Optional[str] = None) -> str:
    """
    Get a signed (temporary) URL for a file in Supabase Storage.

    Args:
        storage_path: Path to file in storage bucket (or a previously issued URL)
        expires_in: URL expiration time in seconds (default: 1 hour)

    Returns:
        Signed URL string
    """
    supabase_url, service_key = _get_supabase_config()
    bucket = _get_storage_bucket(bucket)
    storage_path = _normalize_storage_path(storage_path, bucket)

    url = f"{supabase_url}/storage/v1/object/sign/{bucket}/{storage_path}"
    headers = _get_headers(service_key, 'application/json')

    try:
        response = requests.post(url, headers=headers, json={'expiresIn': expires_in}, timeout=_timeout())
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to get signed URL: {e}")
        raise SupabaseStorageError(f"Failed to get signed URL: {e}") from e

    if response.status_code == 200:
        data = response.json()
        signed_url = data.get('signedURL') or data.get('signedUrl', '')
        if signed_url:
            if signed_url.startswith('http://') or signed_url.startswith('https://'):
                return signed_url
            # Supabase sometimes returns /object/sign/...; normalize to /storage/v1/object/sign/...
            if signed_url.startswith('/storage/'):
                return f"{supabase_url}{signed_url}"
            if signed_url.startswith('/object/'):
                return f"{supabase_url}/storage/v1{signed_url}"
            return f"{supabase_url}/storage/v1/{signed_url.lstrip('/')}"

    raise SupabaseStorageError(f"Failed to create signed URL: {response.text[:200]}")


def delete_file(storage_path: str, bucket: Optional[str] = None) -> bool:
    """Delete a file from Supabase Storage. Returns True if deleted."""
    supabase_url, service_key = _get_supabase_config()
    bucket = _get_storage_bucket(bucket)
    storage_path = _normalize_storage_path(storage_path, bucket)

    url = f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}"
    try:
        response = requests.delete(url, headers=_get_headers(service_key), timeout=_timeout())
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to delete file {storage_path}: {e}")
        raise SupabaseStorageError(f"Delete failed: {e}") from e

    if response.status_code in (200, 204):
        logger.info(f"File deleted from Supabase Storage: {bucket}/{storage_path}")
        return True
    logger.warning(f"Delete of {storage_path} returned {response.status_code}")
    return False


def is_supabase_url(url: str) -> bool:
    """Check whether a URL points at this project's storage."""
    if not url:
        return False
    base = (current_app.config.get('SUPABASE_URL') or '').rstrip('/')
    return bool(base) and url.startswith(f"{base}/storage/v1/")


def upload_certificate_pdf(pdf_bytes: bytes, user_id: str) -> Tuple[str, str]:
    """Upload a generated certificate. Returns (storage_path, url)."""
    millis = int(utc_now().timestamp() * 1000)
    storage_path = f"certificates/cert-{user_id}-{millis}.pdf"
    bucket = current_app.config.get('SUPABASE_CERTIFICATES_BUCKET') or CERTIFICATES_BUCKET
    public = bool(current_app.config.get('SUPABASE_CERTIFICATES_PUBLIC', True))
    path, url = upload_bytes(pdf_bytes, storage_path, 'application/pdf', bucket=bucket, public=public)
    if not url:
        url = get_signed_url(path, expires_in=60 * 60 * 24 * 7, bucket=bucket)
    return path, url


def upload_profile_photo(data: bytes, user_id: str, content_type: str) -> str:
    """Upload a profile photo and return its public URL."""
    ext = {'image/jpeg': '.jpg', 'image/png': '.png', 'image/webp': '.webp'}.get(content_type, '.jpg')
    filename = generate_unique_filename(f"photo{ext}", prefix='profile')
    bucket = current_app.config.get('SUPABASE_PHOTOS_BUCKET') or PHOTOS_BUCKET
    _, url = upload_bytes(data, f"{user_id}/{filename}", content_type, bucket=bucket, public=True, upsert=True)
    return url


def certificate_download_url(pdf_url: str, expires_in: int = 3600) -> str:
    """URL a client can open now: the stored URL, or a fresh signed one for private buckets."""
    if current_app.config.get('SUPABASE_CERTIFICATES_PUBLIC', True) or not is_supabase_url(pdf_url):
        return pdf_url
    bucket = current_app.config.get('SUPABASE_CERTIFICATES_BUCKET') or CERTIFICATES_BUCKET
    return get_signed_url(pdf_url, expires_in=expires_in, bucket=bucket)
