"""Reserved transponder codes that signal an alert."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SquawkAlert:
    code: str
    label: str
    severity: str  # hijack, radio, emergency


EMERGENCY_SQUAWKS = {
    '7500': SquawkAlert('7500', 'Hijack', 'hijack'),
    '7600': SquawkAlert('7600', 'Radio Failure', 'radio'),
    '7700': SquawkAlert('7700', 'Emergency', 'emergency'),
}


def get_squawk_alert(squawk: Optional[str]) -> Optional[SquawkAlert]:
    if not squawk:
        return None
    return EMERGENCY_SQUAWKS.get(squawk)


def is_emergency_squawk(squawk: Optional[str]) -> bool:
    return get_squawk_alert(squawk) is not None
