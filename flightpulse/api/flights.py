"""
Flight data API endpoints.

Provides endpoints for:
- GET /api/flights - Aircraft inside a bounding box
- GET /api/flight - One aircraft by ICAO24 address
- GET /api/route - Origin/destination for a callsign
- GET /api/status - Cache, token and rate-limit state

Every response is marked ``Cache-Control: no-store``: the payloads are
live telemetry and must not be reused by intermediaries.
"""

import logging
import math
import re
import time
from typing import Optional

from flask import Blueprint, current_app, jsonify, request

from flightpulse.config import config
from flightpulse.models import BoundingBox
from flightpulse.services import FlightRoute

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api')

ICAO24_PATTERN = re.compile(r'^[0-9a-f]{6}$')

NO_STORE = {'Cache-Control': 'no-store'}


def _feed():
    return current_app.config['FEED_SERVICE']


def _routes():
    return current_app.config['ROUTE_SERVICE']


def _parse_coordinate(name: str, default: float) -> Optional[float]:
    """Float query parameter, default if absent, None if not a number."""
    raw = request.args.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


@flights_bp.route('/flights', methods=['GET'])
def list_flights():
    """
    List aircraft inside a bounding box.

    Query parameters:
    - lamin, lomin, lamax, lomax: floats, defaults cover central Europe

    Response: {flights, timestamp, count, error?, rateLimited?, retryAfterSeconds?}
    """
    defaults = config.default_bounds
    raw = [
        _parse_coordinate('lamin', defaults.lamin),
        _parse_coordinate('lomin', defaults.lomin),
        _parse_coordinate('lamax', defaults.lamax),
        _parse_coordinate('lomax', defaults.lomax),
    ]

    if any(value is None for value in raw):
        logger.debug(f'Rejected bounds {dict(request.args)}')
        return jsonify({
            'flights': [],
            'timestamp': int(time.time() * 1000),
            'count': 0,
            'error': 'Invalid bounds',
        }), 400, NO_STORE

    bounds = BoundingBox.normalize(*raw)
    result = _feed().get_flights(bounds)

    return jsonify(result.body), result.status, NO_STORE


@flights_bp.route('/flight', methods=['GET'])
def get_flight():
    """
    Latest state of a single aircraft.

    Query parameters:
    - icao24: six hex digits (case-insensitive)
    """
    icao24 = (request.args.get('icao24') or '').strip().lower()
    if not icao24:
        return jsonify({'flight': None, 'error': 'Missing icao24 parameter'}), 400, NO_STORE

    if not ICAO24_PATTERN.match(icao24):
        return jsonify({'flight': None, 'error': 'Invalid icao24 parameter'}), 400, NO_STORE

    result = _feed().get_flight(icao24)
    return jsonify(result.body), result.status, NO_STORE


@flights_bp.route('/route', methods=['GET'])
def get_route():
    """
    Route information for a callsign.

    Query parameters:
    - callsign: ICAO callsign, e.g. DLH4AB
    """
    callsign = (request.args.get('callsign') or '').strip()
    if not callsign:
        return jsonify(FlightRoute(callsign='', error='Missing callsign').to_dict()), 400, NO_STORE

    route, status = _routes().lookup(callsign)
    return jsonify(route.to_dict()), status, NO_STORE


@flights_bp.route('/status', methods=['GET'])
def get_status():
    """Cache, upstream and token statistics."""
    return jsonify({
        'feed': _feed().stats,
        'routes': _routes().stats,
    }), 200, NO_STORE
