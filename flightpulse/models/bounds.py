"""
Geographic bounding box for viewport queries.

OpenSky expects: lamin, lomin, lamax, lomax
(latitude min, longitude min, latitude max, longitude max)

Boxes are always normalized on construction through ``normalize()``:
min/max pairs are reordered first, then clamped to valid ranges, so
every box in the system satisfies south <= north and west <= east.
"""

import math
from dataclasses import dataclass


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return min(upper, max(lower, value))


def quantize(value: float, step: float = 0.5) -> float:
    """Snap value to the nearest multiple of step, ties rounding up."""
    return math.floor(value / step + 0.5) * step


@dataclass(frozen=True)
class BoundingBox:
    """South/west/north/east rectangle in WGS84 degrees."""
    lamin: float
    lomin: float
    lamax: float
    lomax: float

    @classmethod
    def normalize(
        cls,
        lamin: float,
        lomin: float,
        lamax: float,
        lomax: float,
    ) -> 'BoundingBox':
        """Reorder raw edges, then clamp them to valid lat/lon ranges."""
        return cls(
            lamin=clamp(min(lamin, lamax), -90.0, 90.0),
            lomin=clamp(min(lomin, lomax), -180.0, 180.0),
            lamax=clamp(max(lamin, lamax), -90.0, 90.0),
            lomax=clamp(max(lomin, lomax), -180.0, 180.0),
        )

    def cache_key(self, step: float = 0.5) -> str:
        """
        Quantized cache key.

        Each edge is snapped to the grid before formatting, so viewports
        that differ by sub-grid panning or zooming share one key.
        """
        return '_'.join(
            f'{quantize(edge, step):.2f}'
            for edge in (self.lamin, self.lomin, self.lamax, self.lomax)
        )

    def contains_point(self, latitude: float, longitude: float) -> bool:
        return (
            self.lamin <= latitude <= self.lamax and
            self.lomin <= longitude <= self.lomax
        )

    def covers(self, other: 'BoundingBox') -> bool:
        """True if this box fully contains other."""
        return (
            self.lamin <= other.lamin and
            self.lomin <= other.lomin and
            self.lamax >= other.lamax and
            self.lomax >= other.lomax
        )

    def intersects(self, other: 'BoundingBox') -> bool:
        """True if the boxes share any area (edges touching counts)."""
        return not (
            self.lamax < other.lamin or
            self.lamin > other.lamax or
            self.lomax < other.lomin or
            self.lomin > other.lomax
        )

    def max_edge_delta(self, other: 'BoundingBox') -> float:
        """Largest absolute difference between corresponding edges."""
        return max(
            abs(self.lamin - other.lamin),
            abs(self.lomin - other.lomin),
            abs(self.lamax - other.lamax),
            abs(self.lomax - other.lomax),
        )

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            'lamin': self.lamin,
            'lomin': self.lomin,
            'lamax': self.lamax,
            'lomax': self.lomax,
        }
