"""
Show hours parsing.

Recognizes single ranges such as "9am-3pm", "9:30 AM – 2 PM", "10 – 4",
"8-2" and "09:00-15:00" and returns 24-hour "HH:MM" start/end strings.
Strings holding more than one range ("Sat 9-5, Sun 10-4") are not guessed.
"""
import re
from typing import List, Optional, Tuple

TIME = r'(\d{1,2})(?::(\d{2}))?\s*(?:([ap])\.?\s*m\.?)?'
RANGE_RE = re.compile(
    rf'(?<![\d/:]){TIME}\s*(?:-|to|until|til|till)\s*{TIME}(?![\d/])',
    re.IGNORECASE,
)


def _normalize_text(text: str) -> str:
    text = text.replace('–', '-').replace('—', '-').replace('−', '-')
    text = re.sub(r'\bnoon\b', '12pm', text, flags=re.IGNORECASE)
    text = re.sub(r'\bmidnight\b', '12am', text, flags=re.IGNORECASE)
    return text


def _to_minutes(hour: int, minute: int, meridian: Optional[str]) -> int:
    if hour > 12 or meridian is None:
        return hour * 60 + minute
    if meridian == 'a':
        return (0 if hour == 12 else hour) * 60 + minute
    return (12 if hour == 12 else hour + 12) * 60 + minute


def _resolve_start(hour: int, minute: int) -> int:
    """Start without am/pm: 6-11 is morning, 12 and 1-5 afternoon."""
    if hour > 12 or hour == 0:
        return hour * 60 + minute
    if 6 <= hour <= 11:
        return _to_minutes(hour, minute, 'a')
    return _to_minutes(hour, minute, 'p')


def _resolve_end(hour: int, minute: int, start: int) -> int:
    """End without am/pm: the earliest reading that falls after the start."""
    if hour > 12 or hour == 0:
        return hour * 60 + minute
    morning = _to_minutes(hour, minute, 'a')
    if morning > start:
        return morning
    return _to_minutes(hour, minute, 'p')


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_12h(minutes: int) -> str:
    hour, minute = divmod(minutes, 60)
    suffix = 'AM' if hour < 12 else 'PM'
    display = hour % 12 or 12
    return f"{display}:{minute:02d} {suffix}"


def _parse_match(match) -> Optional[Tuple[int, int]]:
    h1, m1, mer1, h2, m2, mer2 = match.groups()
    h1, h2 = int(h1), int(h2)
    m1, m2 = int(m1 or 0), int(m2 or 0)
    mer1 = mer1.lower() if mer1 else None
    mer2 = mer2.lower() if mer2 else None
    if h1 > 23 or h2 > 23 or m1 > 59 or m2 > 59:
        return None

    if mer1:
        start = _to_minutes(h1, m1, mer1)
    elif mer2 and h1 <= 12:
        start = _to_minutes(h1, m1, mer2)
        end_guess = _to_minutes(h2, m2, mer2)
        if start > end_guess:
            start = _to_minutes(h1, m1, 'a')
    else:
        start = _resolve_start(h1, m1)

    if mer2:
        end = _to_minutes(h2, m2, mer2)
    else:
        end = _resolve_end(h2, m2, start)
    return start, end


def parse_hours(text: Optional[str]) -> Tuple[Optional[Tuple[str, str]], List[str]]:
    """
    Parse a show-hours string.

    Returns:
        (("HH:MM", "HH:MM") or None, warnings)
    """
    if not text:
        return None, []

    matches = list(RANGE_RE.finditer(_normalize_text(text)))
    if not matches:
        return None, [f'unparseable show hours: {text}']
    if len(matches) > 1:
        return None, [f'multiple time ranges in show hours: {text}']

    parsed = _parse_match(matches[0])
    if not parsed:
        return None, [f'unparseable show hours: {text}']
    start, end = parsed
    warnings = []
    if end <= start:
        warnings.append(f'show end time not after start time: {text}')
    return (format_hhmm(start), format_hhmm(end)), warnings


def find_hours_in_text(text: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Find a single am/pm time range in free text (e.g. a description).

    At least one side must carry am/pm so date ranges like "8-2" are not
    mistaken for hours.

    Returns:
        (start_minutes, end_minutes) or None
    """
    if not text:
        return None
    matches = [
        m for m in RANGE_RE.finditer(_normalize_text(text))
        if m.group(3) or m.group(6)
    ]
    if len(matches) != 1:
        return None
    return _parse_match(matches[0])


SINGLE_TIME_RE = re.compile(rf'^\s*{TIME}\s*$', re.IGNORECASE)


def parse_time(text: Optional[str]) -> Optional[int]:
    """
    Parse one time of day ("10:00", "15:30", "10am", "2:30 pm").

    Without am/pm the hour is read as 24-hour.

    Returns:
        minutes since midnight, or None
    """
    if not text:
        return None
    match = SINGLE_TIME_RE.match(_normalize_text(text))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2) or 0)
    meridian = match.group(3).lower() if match.group(3) else None
    if hour > 23 or minute > 59 or (meridian and hour > 12):
        return None
    return _to_minutes(hour, minute, meridian)
