"""
Barangay Luna CertSys - Realtime Webhook
Supabase database webhooks post row changes here; they are published on
the in-process change feed that keeps cached lists current.
"""
import hmac

from flask import Blueprint, request, jsonify, current_app

from certsys.api.utils.realtime import ChangeEvent
from certsys.api.utils.security import error_503
from certsys.api.utils.stores import get_feed

realtime_bp = Blueprint('realtime', __name__, url_prefix='/api/realtime')


@realtime_bp.route('/webhook', methods=['POST'])
def webhook():
    secret = current_app.config.get('REALTIME_WEBHOOK_SECRET')
    if not secret:
        return error_503('Realtime webhook is not configured')
    provided = request.headers.get('X-Webhook-Secret') or ''
    if not hmac.compare_digest(provided.encode('utf-8'), secret.encode('utf-8')):
        return jsonify({'error': 'Invalid webhook secret'}), 401

    try:
        event = ChangeEvent.from_payload(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    delivered = get_feed().publish(event)
    current_app.logger.debug(f"{event.event_type} on {event.table} delivered to {delivered} subscriber(s)")
    return jsonify({'received': True, 'delivered': delivered}), 200
