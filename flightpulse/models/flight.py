"""
Flight model - one aircraft as seen in a single upstream snapshot.

Flights are transient: the whole list is rebuilt on every poll and never
mutated afterwards. The primary key is the ICAO24 transponder address
(six lowercase hex digits).

Timestamps follow the upstream feed and are Unix epoch seconds:
- last_contact: last message of any kind from the transponder (required, > 0)
- last_position_update: time of the position fix itself (may lag last_contact)
"""

from dataclasses import dataclass
from typing import Optional

from flightpulse.models.squawk import is_emergency_squawk

# Position source code to label
POSITION_SOURCES = {
    0: 'ADS-B',
    1: 'ASTERIX',
    2: 'MLAT',
    3: 'FLARM',
}


@dataclass(frozen=True)
class Flight:
    """
    Validated aircraft state.

    Instances only come out of the state normalizer, which guarantees a
    position inside valid lat/lon ranges and a positive last_contact.
    """
    icao24: str
    callsign: str
    country: str
    latitude: float
    longitude: float
    heading: Optional[float]
    velocity: Optional[float]
    vertical_rate: Optional[float]
    on_ground: bool
    baro_altitude: Optional[float]
    geo_altitude: Optional[float]
    squawk: Optional[str]
    last_contact: int
    last_position_update: Optional[float] = None
    category: int = 0
    position_source: int = 0

    @property
    def altitude(self) -> Optional[float]:
        """Altitude for display: barometric, falling back to geometric."""
        if self.baro_altitude is not None:
            return self.baro_altitude
        return self.geo_altitude

    @property
    def is_emergency(self) -> bool:
        return is_emergency_squawk(self.squawk)

    @property
    def position_source_label(self) -> str:
        return POSITION_SOURCES.get(self.position_source, POSITION_SOURCES[0])

    def is_stale(self, now: float, threshold: float = 60.0) -> bool:
        """No contact for more than threshold seconds."""
        return (now - self.last_contact) > threshold

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        return {
            'icao24': self.icao24,
            'callsign': self.callsign,
            'country': self.country,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'heading': self.heading,
            'velocity': self.velocity,
            'verticalRate': self.vertical_rate,
            'onGround': self.on_ground,
            'baroAltitude': self.baro_altitude,
            'geoAltitude': self.geo_altitude,
            'altitude': self.altitude,
            'squawk': self.squawk,
            'lastContact': self.last_contact,
            'lastPositionUpdate': self.last_position_update,
            'category': self.category,
            'positionSource': self.position_source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Flight':
        """Rebuild a Flight from its ``to_dict`` form (client side)."""
        return cls(
            icao24=data['icao24'],
            callsign=data.get('callsign') or '',
            country=data.get('country') or '',
            latitude=float(data['latitude']),
            longitude=float(data['longitude']),
            heading=data.get('heading'),
            velocity=data.get('velocity'),
            vertical_rate=data.get('verticalRate'),
            on_ground=bool(data.get('onGround', False)),
            baro_altitude=data.get('baroAltitude'),
            geo_altitude=data.get('geoAltitude'),
            squawk=data.get('squawk'),
            last_contact=int(data['lastContact']),
            last_position_update=data.get('lastPositionUpdate'),
            category=int(data.get('category') or 0),
            position_source=int(data.get('positionSource') or 0),
        )
