"""
Location parsing - split a compound location string into its parts.

"Civic Center, 123 Main St, Suite 4, Dallas, TX 75201" becomes
venue / address / city / state / zip. Segments are assigned only when a
pattern anchors them; anything else is left null and reported.
"""
import re
from dataclasses import dataclass, asdict
from typing import List, Optional, Tuple

from constants import STATE_CODES, get_state_code

ZIP_RE = re.compile(r'\b(\d{5}(?:-\d{4})?)\s*$')
ZIP_FIELD_RE = re.compile(r'\b(\d{5}(?:-\d{4})?)\b')
STREET_RE = re.compile(r'^\d+[A-Za-z]?\s+\S')
UNIT_RE = re.compile(
    r'^(?:#\s*\w+|(?:suite|ste|unit|apt|bldg|building|floor|fl|room|rm)\b)',
    re.IGNORECASE,
)
TRAILING_STATE_RE = re.compile(r'^(.*\S)\s+([A-Za-z]{2})\.?$')


@dataclass
class LocationParts:
    venue_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def _split_trailing_state(segment: str) -> Tuple[str, Optional[str]]:
    """
    'Dallas TX' -> ('Dallas', 'TX').

    Only 2-letter codes are split off; full names are matched as whole
    segments so "Fort Washington" stays a city.
    """
    match = TRAILING_STATE_RE.match(segment)
    if match and match.group(2).upper() in STATE_CODES:
        return match.group(1).strip(), match.group(2).upper()
    return segment, None


def parse_location(text: Optional[str]) -> Tuple[LocationParts, List[str]]:
    """
    Parse a free-text location string.

    Args:
        text: e.g. "Expo Hall, 100 Fair Dr, Springfield, IL 62702"

    Returns:
        (LocationParts, warnings)
    """
    parts = LocationParts()
    warnings: List[str] = []
    if not text:
        return parts, warnings

    remaining = ' '.join(text.split())

    match = ZIP_RE.search(remaining)
    if match:
        parts.zip_code = match.group(1)
        remaining = remaining[:match.start()].rstrip(' ,')

    segments = [s.strip() for s in remaining.split(',') if s.strip()]

    if segments:
        code = get_state_code(segments[-1])
        if code:
            parts.state = code
            segments.pop()
        else:
            rest, code = _split_trailing_state(segments[-1])
            if code and rest:
                parts.state = code
                segments[-1] = rest

    # City is the segment right before the state, unless it is a street line
    if parts.state and segments and not STREET_RE.match(segments[-1]):
        parts.city = segments.pop()

    unassigned = []
    for segment in segments:
        if parts.address is None and STREET_RE.match(segment):
            parts.address = segment
        elif parts.address is not None and UNIT_RE.match(segment):
            parts.address = f"{parts.address}, {segment}"
        elif parts.venue_name is None and not STREET_RE.match(segment):
            parts.venue_name = segment
        else:
            unassigned.append(segment)

    for segment in unassigned:
        warnings.append(f'unassigned location segment: {segment}')

    return parts, warnings


def normalize_state(value: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """Map a state value to its 2-letter code."""
    if not value:
        return None, []
    code = get_state_code(value)
    if code:
        warnings = []
        if len(value.strip().rstrip('.')) > 2:
            warnings.append(f'state name abbreviated: {value} -> {code}')
        return code, warnings
    return value, [f'unrecognized state: {value}']


def normalize_zip(value: Optional[str]) -> Tuple[Optional[str], List[str]]:
    if not value:
        return None, []
    match = ZIP_FIELD_RE.search(value)
    if match:
        return match.group(1), []
    return None, [f'invalid zip code dropped: {value}']


def split_city_state(city: str) -> Tuple[str, Optional[str]]:
    """'Dallas, TX' or 'Dallas TX' in a city field -> ('Dallas', 'TX')."""
    if ',' in city:
        head, _, tail = city.rpartition(',')
        code = get_state_code(tail)
        if code and head.strip():
            return head.strip(), code
    rest, code = _split_trailing_state(city)
    if code and rest:
        return rest, code
    return city, None
