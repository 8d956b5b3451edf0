"""Map helpers: distance to the barangay hall, arrival check and directions."""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
ARRIVAL_THRESHOLD_KM = 0.05  # 50 m

DIRECTIONS_URL = 'https://maps.googleapis.com/maps/api/directions/json'

DEFAULT_BARANGAY_INFO = {
    'name': 'BARANGAY LUNA',
    'city': 'City of Surigao',
    'province': 'Surigao del Norte',
    'region': 'CARAGA Region XIII',
    'latitude': 9.7858,
    'longitude': 125.4833,
}

PUROK_MARKERS: List[Dict] = [
    {'id': 'hall', 'title': 'Barangay Luna Hall', 'kind': 'hall', 'latitude': 9.7858, 'longitude': 125.4833},
    {'id': 'purok-1', 'title': 'Purok 1', 'kind': 'purok', 'latitude': 9.7872, 'longitude': 125.4821},
    {'id': 'purok-2', 'title': 'Purok 2', 'kind': 'purok', 'latitude': 9.7866, 'longitude': 125.4849},
    {'id': 'purok-3', 'title': 'Purok 3', 'kind': 'purok', 'latitude': 9.7849, 'longitude': 125.4857},
    {'id': 'purok-4', 'title': 'Purok 4', 'kind': 'purok', 'latitude': 9.7839, 'longitude': 125.4828},
    {'id': 'purok-5', 'title': 'Purok 5', 'kind': 'purok', 'latitude': 9.7851, 'longitude': 125.4809},
    {'id': 'purok-6', 'title': 'Purok 6', 'kind': 'purok', 'latitude': 9.7880, 'longitude': 125.4840},
]


class DirectionsError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def has_arrived(distance_km: float, threshold_km: float = ARRIVAL_THRESHOLD_KM) -> bool:
    return distance_km <= threshold_km


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m away"
    return f"{distance_km:.1f} km away"


def distance_to_hall(latitude: float, longitude: float) -> Dict:
    km = haversine_km(latitude, longitude, DEFAULT_BARANGAY_INFO['latitude'], DEFAULT_BARANGAY_INFO['longitude'])
    return {
        'distance_km': round(km, 4),
        'label': format_distance(km),
        'arrived': has_arrived(km),
    }


def fetch_directions(origin: tuple, destination: Optional[tuple] = None, mode: str = 'driving') -> Dict:
    """Route from ``origin`` to ``destination`` (the barangay hall by default).

    Returns distance_km, duration_minutes and the encoded overview polyline.
    """
    api_key = current_app.config.get('GOOGLE_MAPS_API_KEY')
    if not api_key:
        raise DirectionsError('Directions are unavailable: GOOGLE_MAPS_API_KEY is not configured', 503)

    destination = destination or (DEFAULT_BARANGAY_INFO['latitude'], DEFAULT_BARANGAY_INFO['longitude'])
    params = {
        'origin': f"{origin[0]},{origin[1]}",
        'destination': f"{destination[0]},{destination[1]}",
        'mode': mode,
        'key': api_key,
    }
    try:
        response = requests.get(
            DIRECTIONS_URL, params=params,
            timeout=current_app.config.get('DIRECTIONS_TIMEOUT_SECONDS', 15),
        )
    except requests.exceptions.Timeout as e:
        raise DirectionsError('The request timed out. Please try again.', 504) from e
    except requests.exceptions.RequestException as e:
        logger.error("Directions request failed: %s", e)
        raise DirectionsError('Directions service unavailable') from e

    if response.status_code != 200:
        raise DirectionsError(f'Directions service returned {response.status_code}')

    body = response.json()
    if body.get('status') != 'OK' or not body.get('routes'):
        raise DirectionsError(f"No route found ({body.get('status', 'UNKNOWN')})", 404)

    route = body['routes'][0]
    legs = route.get('legs') or []
    meters = sum((leg.get('distance') or {}).get('value', 0) for leg in legs)
    seconds = sum((leg.get('duration') or {}).get('value', 0) for leg in legs)
    return {
        'distance_km': round(meters / 1000.0, 2),
        'duration_minutes': round(seconds / 60.0),
        'polyline': (route.get('overview_polyline') or {}).get('points'),
        'summary': route.get('summary'),
    }
