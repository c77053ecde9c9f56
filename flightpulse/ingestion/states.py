"""
State normalizer - raw OpenSky payloads to validated Flight objects.

OpenSky state vector format (array indices):
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max)
2: origin_country  - Country of registration
3: time_position   - Unix timestamp of last position update
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
11: vertical_rate  - Vertical rate (m/s)
12: sensors        - Sensor IDs (array)
13: geo_altitude   - Geometric altitude (meters)
14: squawk         - Transponder code
15: spi            - Special position indicator
16: position_source - 0=ADS-B, 1=ASTERIX, 2=MLAT, 3=FLARM
17: category       - Aircraft category (extended responses only)

Validation is per record: a bad record yields None and its siblings
are kept. Only an unrecognizable envelope rejects the whole payload.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from flightpulse.models import Flight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatesSnapshot:
    """Envelope of one upstream response."""
    as_of: Optional[float]
    records: List[list]


def _number(record: list, index: int) -> Optional[float]:
    """Finite number at index, else None. Booleans are not numbers here."""
    if index >= len(record):
        return None
    value = record[index]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def _string(record: list, index: int) -> Optional[str]:
    if index >= len(record):
        return None
    value = record[index]
    return value if isinstance(value, str) else None


def _boolean(record: list, index: int) -> Optional[bool]:
    if index >= len(record):
        return None
    value = record[index]
    return value if isinstance(value, bool) else None


def _integer(record: list, index: int, fallback: int) -> int:
    value = _number(record, index)
    if value is None:
        return fallback
    return int(value)


def parse_snapshot(raw: Any) -> Optional[StatesSnapshot]:
    """
    Unwrap an OpenSky ``/states/all`` body.

    Returns None unless raw is a mapping with a ``states`` list. OpenSky
    sends ``"states": null`` for an empty region, which is treated as an
    empty list rather than a malformed payload. Non-list items inside the
    list are dropped.
    """
    if not isinstance(raw, dict):
        return None

    states = raw.get('states', ...)
    if states is None:
        states = []
    if not isinstance(states, list):
        return None

    records = [item for item in states if isinstance(item, list)]

    as_of = raw.get('time')
    if isinstance(as_of, bool) or not isinstance(as_of, (int, float)) or not math.isfinite(as_of):
        as_of = None

    return StatesSnapshot(as_of=as_of, records=records)


def to_flight(record: list) -> Optional[Flight]:
    """
    Validate one state vector.

    Returns None if the address is missing, the position is missing or
    out of range, or last_contact is not positive.
    """
    if not isinstance(record, list):
        return None

    icao24 = (_string(record, 0) or '').strip().lower()
    if not icao24:
        return None

    longitude = _number(record, 5)
    latitude = _number(record, 6)
    if longitude is None or latitude is None:
        return None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        return None

    last_contact = _integer(record, 4, 0)
    if last_contact <= 0:
        return None

    heading = _number(record, 10)
    if heading is not None:
        heading = heading % 360
        # Tiny negative values round up to exactly 360.0
        if heading >= 360:
            heading = 0.0

    squawk = _string(record, 14)
    squawk = squawk.strip() if squawk and squawk.strip() else None

    return Flight(
        icao24=icao24,
        callsign=(_string(record, 1) or '').strip(),
        country=_string(record, 2) or '',
        latitude=latitude,
        longitude=longitude,
        heading=heading,
        velocity=_number(record, 9),
        vertical_rate=_number(record, 11),
        on_ground=bool(_boolean(record, 8)),
        baro_altitude=_number(record, 7),
        geo_altitude=_number(record, 13),
        squawk=squawk,
        last_contact=last_contact,
        last_position_update=_number(record, 3),
        category=_integer(record, 17, 0),
        position_source=_integer(record, 16, 0),
    )


def to_flights(snapshot: StatesSnapshot) -> List[Flight]:
    """Normalize every record, dropping the ones that fail validation."""
    flights = []
    for record in snapshot.records:
        flight = to_flight(record)
        if flight:
            flights.append(flight)

    dropped = len(snapshot.records) - len(flights)
    if dropped:
        logger.debug(f'Dropped {dropped} of {len(snapshot.records)} state vectors')

    return flights
