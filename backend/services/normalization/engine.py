"""
Normalization Engine - raw candidate -> normalized payload.

Pure and deterministic for a given `today`. The output uses the same field
names the candidate schema accepts, so normalizing a normalized payload
returns it unchanged.

Usage:
    from services.normalization import normalize_show

    result = normalize_show(pending.raw_payload)
    pending.normalized_payload = result.payload
    pending.validation_warnings = result.warnings
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from constants import NORMALIZED_FIELDS
from scrapers.candidate_schema import validate_candidate
from services.normalization.contact import extract_contact, normalize_email, normalize_phone
from services.normalization.dates import normalize_dates
from services.normalization.fees import parse_fee
from services.normalization.hours import (
    find_hours_in_text,
    format_12h,
    format_hhmm,
    parse_hours,
    parse_time,
)
from services.normalization.location import (
    normalize_state,
    normalize_zip,
    parse_location,
    split_city_state,
)
from services.normalization.text import clean_text

CLEANED_TEXT_FIELDS = (
    'name', 'description', 'url', 'venue_name', 'address', 'city', 'state',
    'zip_code', 'location', 'contact_name', 'contact_phone', 'contact_email',
    'contact_info', 'entry_fee_text', 'show_hours',
)


@dataclass
class NormalizationResult:
    """Normalized payload plus non-fatal warnings."""
    payload: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    is_valid: bool = True


def _add(warnings: List[str], new: List[str]):
    for warning in new:
        if warning not in warnings:
            warnings.append(warning)


def _apply_location(values: Dict[str, Any], warnings: List[str]):
    """Split compound location text into the separate location fields."""
    structured = any(values.get(k) for k in ('address', 'city', 'state'))
    source = values.get('location')
    if not source and not structured and values.get('venue_name') and ',' in values['venue_name']:
        source = values['venue_name']
        values['venue_name'] = None

    if source:
        parts, parse_warnings = parse_location(source)
        _add(warnings, parse_warnings)
        for key, value in parts.to_dict().items():
            if value and not values.get(key):
                values[key] = value

    if values.get('city') and not values.get('state'):
        city, code = split_city_state(values['city'])
        if code:
            values['city'] = city
            values['state'] = code
    elif values.get('city') and ',' in values['city']:
        values['city'], _ = split_city_state(values['city'])

    values['state'], state_warnings = normalize_state(values.get('state'))
    _add(warnings, state_warnings)
    values['zip_code'], zip_warnings = normalize_zip(values.get('zip_code'))
    _add(warnings, zip_warnings)


def _apply_contact(values: Dict[str, Any], warnings: List[str]):
    values['contact_phone'] = normalize_phone(values.get('contact_phone'))
    values['contact_email'] = normalize_email(values.get('contact_email'))

    blob = values.get('contact_info')
    if blob:
        extracted, contact_warnings = extract_contact(blob)
        _add(warnings, contact_warnings)
        for key, value in extracted.items():
            if value and not values.get(key):
                values[key] = value

    # Last resort: phone/email mentioned in the description
    if not values.get('contact_phone') and not values.get('contact_email'):
        extracted, _ = extract_contact(values.get('description'))
        values['contact_phone'] = extracted['contact_phone']
        values['contact_email'] = extracted['contact_email']


def _apply_fee(values: Dict[str, Any], raw_fee, warnings: List[str]):
    if isinstance(raw_fee, str) and not values.get('entry_fee_text'):
        values['entry_fee_text'] = ' '.join(raw_fee.split())
    source = raw_fee if raw_fee is not None else values.get('entry_fee_text')
    values['entry_fee'], fee_warnings = parse_fee(source)
    _add(warnings, fee_warnings)


def _apply_hours(values: Dict[str, Any], data: Dict[str, Any], warnings: List[str]):
    """
    Fill show_hours/start_time/end_time.

    A parseable show_hours string wins. Otherwise explicit times are kept,
    and show_hours is rebuilt when both are present. The description is
    searched only when neither is available.
    """
    explicit = {}
    for key in ('start_time', 'end_time'):
        explicit[key] = parse_time(data.get(key))
        if data.get(key) and explicit[key] is None:
            _add(warnings, [f"unparseable {key.replace('_', ' ')}: {data[key]}"])
    start, end = explicit['start_time'], explicit['end_time']

    if values.get('show_hours'):
        parsed, hour_warnings = parse_hours(values['show_hours'])
        _add(warnings, hour_warnings)
        if parsed:
            values['start_time'], values['end_time'] = parsed
            return
    elif start is not None and end is not None:
        values['show_hours'] = f"{format_12h(start)} - {format_12h(end)}"
        if end <= start:
            _add(warnings, [f"show end time not after start time: {values['show_hours']}"])
    elif start is None and end is None:
        found = find_hours_in_text(values.get('description'))
        if found:
            start, end = found
            values['show_hours'] = f"{format_12h(start)} - {format_12h(end)}"

    values['start_time'] = format_hhmm(start) if start is not None else None
    values['end_time'] = format_hhmm(end) if end is not None else None


def normalize_show(raw: Dict[str, Any], today: Optional[date] = None) -> NormalizationResult:
    """
    Normalize one raw candidate.

    Args:
        raw: raw_payload as extracted (camelCase) or a normalized payload
        today: reference date for year inference (defaults to date.today())

    Returns:
        NormalizationResult; is_valid is False when both name and start
        date are missing
    """
    today = today or date.today()
    candidate, warnings = validate_candidate(raw)
    data = candidate.model_dump()

    values: Dict[str, Any] = {}
    for key in CLEANED_TEXT_FIELDS:
        values[key], text_warnings = clean_text(data.get(key))
        _add(warnings, text_warnings)

    start_date, end_date, date_state, date_warnings = normalize_dates(
        data.get('start_date'), data.get('end_date'), today
    )
    _add(warnings, date_warnings)
    values['start_date'] = start_date
    values['end_date'] = end_date

    _apply_location(values, warnings)
    if date_state and not values.get('state'):
        values['state'] = date_state
        _add(warnings, [f'state taken from date text: {date_state}'])

    _apply_contact(values, warnings)
    _apply_fee(values, data.get('entry_fee'), warnings)
    _apply_hours(values, data, warnings)

    if values.get('url') and not values['url'].startswith(('http://', 'https://')):
        _add(warnings, [f"url is not absolute: {values['url']}"])

    if not values.get('name'):
        _add(warnings, ['name missing'])
    if not values.get('venue_name'):
        _add(warnings, ['venue missing'])
    if not values.get('city'):
        _add(warnings, ['city missing'])
    if not values.get('state'):
        _add(warnings, ['state missing'])

    is_valid = bool(values.get('name') or values.get('start_date'))
    payload = {key: values.get(key) for key in NORMALIZED_FIELDS}
    return NormalizationResult(payload=payload, warnings=warnings, is_valid=is_valid)
