"""
Barangay Luna CertSys - Map Routes
Purok markers, distance to the barangay hall and driving directions.
"""
from flask import Blueprint, request, jsonify

from certsys.api import limiter
from certsys.api.utils.auth import login_required
from certsys.api.utils.geo import (
    DEFAULT_BARANGAY_INFO,
    PUROK_MARKERS,
    DirectionsError,
    distance_to_hall,
    fetch_directions,
    format_distance,
    haversine_km,
)
from certsys.api.utils.security import remote_error_response

map_bp = Blueprint('map', __name__, url_prefix='/api/map')

TRAVEL_MODES = ('driving', 'walking', 'bicycling', 'transit')


def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _coordinate(name: str, low: float, high: float):
    raw = request.args.get(name)
    if raw in (None, ''):
        raise ValueError(f'{name} is required')
    value = float(raw)
    if not low <= value <= high:
        raise ValueError(f'{name} must be between {low} and {high}')
    return value


@map_bp.route('/markers', methods=['GET'])
def markers():
    return jsonify({'barangay': DEFAULT_BARANGAY_INFO, 'markers': PUROK_MARKERS}), 200


@map_bp.route('/distance', methods=['GET'])
@login_required
def distance(current_user):
    """Distance from ?lat=&lng= to the hall, or to ?to_lat=&to_lng= when given."""
    try:
        lat = _coordinate('lat', -90, 90)
        lng = _coordinate('lng', -180, 180)
        if request.args.get('to_lat') or request.args.get('to_lng'):
            to_lat = _coordinate('to_lat', -90, 90)
            to_lng = _coordinate('to_lng', -180, 180)
        else:
            to_lat = to_lng = None
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if to_lat is None:
        return jsonify(distance_to_hall(lat, lng)), 200
    km = haversine_km(lat, lng, to_lat, to_lng)
    return jsonify({'distance_km': round(km, 4), 'label': format_distance(km)}), 200


@map_bp.route('/directions', methods=['GET'])
@_limit("60 per hour")
@login_required
def directions(current_user):
    try:
        origin = (_coordinate('lat', -90, 90), _coordinate('lng', -180, 180))
        destination = None
        if request.args.get('to_lat') or request.args.get('to_lng'):
            destination = (_coordinate('to_lat', -90, 90), _coordinate('to_lng', -180, 180))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    mode = request.args.get('mode', 'driving')
    if mode not in TRAVEL_MODES:
        return jsonify({'error': f"mode must be one of: {', '.join(TRAVEL_MODES)}"}), 400

    try:
        route = fetch_directions(origin, destination, mode=mode)
    except DirectionsError as e:
        return remote_error_response(e)
    return jsonify(route), 200
