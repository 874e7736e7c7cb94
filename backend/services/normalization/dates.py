"""
Date normalization for show listings.

Handles the formats sources actually publish:
- "2026-08-02", "8/2/2026", "8/2", "Aug 2", "August 2nd, 2026", "2 Aug 2026"
- ranges: "Aug 2-3", "Aug 2 & 3, 2026", "Aug 30 - Sep 1", "8/2 - 8/3",
  "Dec 30 - Jan 2"
- noise: weekday prefixes, ordinals, times, and state codes appended to the
  date ("Aug 2 AL")

Year rule: a date without a year gets the current year; if that lands
strictly before today it rolls forward one year (shows recur annually).
Explicit years are never rolled.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from constants import STATE_CODES, STATE_NAME_TO_CODE

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12,
}

MONTH = (
    r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|'
    r'aug(?:ust)?|sept?(?:ember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)'
)

WEEKDAY_RE = re.compile(
    r'\b(?:mon|tues?|wed(?:nes)?|thu(?:rs)?|fri|sat(?:ur)?|sun)(?:day)?\b\.?,?',
    re.IGNORECASE,
)
ORDINAL_RE = re.compile(r'\b(\d{1,2})(?:st|nd|rd|th)\b', re.IGNORECASE)
TIME_RE = re.compile(r'\b\d{1,2}(?::\d{2})?\s*[ap]\.?m\b\.?', re.IGNORECASE)
TRAILING_CODE_RE = re.compile(r'^(.*?)[\s,]+([A-Za-z]{2})\.?$')
# "west virginia" must be tried before "virginia"
STATE_NAMES_LONGEST_FIRST = sorted(STATE_NAME_TO_CODE, key=len, reverse=True)
YEAR_RE = re.compile(r'\b(?:19|20)\d{2}\b')

ISO_RE = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
NUMERIC_RE = re.compile(r'^(\d{1,2})[/.](\d{1,2})(?:[/.](\d{2}|\d{4}))?$')
MONTH_DAY_RE = re.compile(rf'^({MONTH})\.?\s+(\d{{1,2}})(?:,?\s+(\d{{4}}))?$', re.IGNORECASE)
DAY_MONTH_RE = re.compile(rf'^(\d{{1,2}})\s+({MONTH})\.?(?:,?\s+(\d{{4}}))?$', re.IGNORECASE)

RANGE_SEP = r'(?:-|to|through|thru|&|and)'
ISO_RANGE_RE = re.compile(
    r'^(\d{4}-\d{1,2}-\d{1,2})\s*(?:-|to|through|thru)\s*(\d{4}-\d{1,2}-\d{1,2})$',
    re.IGNORECASE,
)
SAME_MONTH_RANGE_RE = re.compile(
    rf'^({MONTH})\.?\s+(\d{{1,2}})\s*{RANGE_SEP}\s*(\d{{1,2}})(?:,?\s+(\d{{4}}))?$',
    re.IGNORECASE,
)
DAY_FIRST_RANGE_RE = re.compile(
    rf'^(\d{{1,2}})\s*{RANGE_SEP}\s*(\d{{1,2}})\s+({MONTH})\.?(?:,?\s+(\d{{4}}))?$',
    re.IGNORECASE,
)
SPLIT_RE = re.compile(r'\s*(?:\s-\s|-|\bto\b|\bthrough\b|\bthru\b|&|\band\b)\s*', re.IGNORECASE)
MONTH_SEARCH_RE = re.compile(rf'\b{MONTH}\b', re.IGNORECASE)


@dataclass
class ParsedDate:
    value: date
    year_explicit: bool


def _month_number(token: str) -> int:
    return MONTHS[token[:3].lower()]


def _make_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    year = int(token)
    if year < 100:
        year += 2000
    return year


def strip_date_noise(text: str) -> Tuple[str, Optional[str]]:
    """
    Remove weekdays, ordinals, times and trailing state tokens.

    Returns:
        (cleaned text, state code that was stripped from the end or None)
    """
    cleaned = text.replace('–', '-').replace('—', '-')
    cleaned = WEEKDAY_RE.sub(' ', cleaned)
    cleaned = ORDINAL_RE.sub(r'\1', cleaned)

    time_match = TIME_RE.search(cleaned)
    if time_match:
        cleaned = cleaned[:time_match.start()]

    cleaned = ' '.join(cleaned.split()).strip(' ,.-@')
    for word in ('from', 'at', 'on'):
        if cleaned.lower().endswith(' ' + word):
            cleaned = cleaned[:-len(word)].strip(' ,.-')

    stripped_state = None
    while True:
        match = TRAILING_CODE_RE.match(cleaned)
        if match and match.group(2).upper() in STATE_CODES:
            stripped_state = stripped_state or match.group(2).upper()
            cleaned = match.group(1).strip(' ,.-')
            continue
        lowered = cleaned.lower()
        for name in STATE_NAMES_LONGEST_FIRST:
            code = STATE_NAME_TO_CODE[name]
            if lowered.endswith(' ' + name):
                stripped_state = stripped_state or code
                cleaned = cleaned[:-len(name)].strip(' ,.-')
                break
        else:
            break

    return cleaned, stripped_state


def parse_single_date(text: str, today: date, fuzzy: bool = False) -> Optional[ParsedDate]:
    """
    Parse one date. Missing years default to today's year.

    fuzzy=True lets dateutil try free-form text that names a month
    ("Saturday August the 2nd"); only used once range patterns have failed.
    """
    text = text.strip(' ,.')
    if not text:
        return None

    match = ISO_RE.match(text)
    if match:
        value = _make_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        return ParsedDate(value, True) if value else None

    match = NUMERIC_RE.match(text)
    if match:
        year = _expand_year(match.group(3))
        value = _make_date(year or today.year, int(match.group(1)), int(match.group(2)))
        return ParsedDate(value, year is not None) if value else None

    match = MONTH_DAY_RE.match(text)
    if match:
        year = _expand_year(match.group(3))
        value = _make_date(year or today.year, _month_number(match.group(1)), int(match.group(2)))
        return ParsedDate(value, year is not None) if value else None

    match = DAY_MONTH_RE.match(text)
    if match:
        year = _expand_year(match.group(3))
        value = _make_date(year or today.year, _month_number(match.group(2)), int(match.group(1)))
        return ParsedDate(value, year is not None) if value else None

    # Anything else must at least name a month before dateutil gets a try
    if not fuzzy or not MONTH_SEARCH_RE.search(text):
        return None
    try:
        parsed = dateutil_parser.parse(text, default=datetime(today.year, 1, 1))
    except (ValueError, OverflowError):
        return None
    return ParsedDate(parsed.date(), bool(YEAR_RE.search(text)))


def parse_date_text(text: str, today: date) -> Optional[Tuple[ParsedDate, Optional[ParsedDate]]]:
    """
    Parse a single date or a date range.

    Returns:
        (start, end) where end is None for a single date, or None if the
        text is not a recognizable date
    """
    single = parse_single_date(text, today)
    if single:
        return single, None

    match = ISO_RANGE_RE.match(text)
    if match:
        start = parse_single_date(match.group(1), today)
        end = parse_single_date(match.group(2), today)
        if start and end:
            return start, end

    match = SAME_MONTH_RANGE_RE.match(text)
    if match:
        month = _month_number(match.group(1))
        year = _expand_year(match.group(4))
        start = _make_date(year or today.year, month, int(match.group(2)))
        end = _make_date(year or today.year, month, int(match.group(3)))
        if start and end:
            return ParsedDate(start, year is not None), ParsedDate(end, year is not None)

    match = DAY_FIRST_RANGE_RE.match(text)
    if match:
        month = _month_number(match.group(3))
        year = _expand_year(match.group(4))
        start = _make_date(year or today.year, month, int(match.group(1)))
        end = _make_date(year or today.year, month, int(match.group(2)))
        if start and end:
            return ParsedDate(start, year is not None), ParsedDate(end, year is not None)

    # Generic "<date> <sep> <date>": try every separator position
    for sep in SPLIT_RE.finditer(text):
        left = text[:sep.start()]
        right = text[sep.end():]
        start = parse_single_date(left, today)
        end = parse_single_date(right, today)
        if not (start and end):
            continue
        if end.year_explicit and not start.year_explicit:
            year = end.value.year
            if start.value.month > end.value.month:
                year -= 1
            shifted = _make_date(year, start.value.month, start.value.day)
            if shifted:
                start = ParsedDate(shifted, True)
        return start, end

    single = parse_single_date(text, today, fuzzy=True)
    if single:
        return single, None
    return None


def normalize_dates(start_raw: Optional[str], end_raw: Optional[str], today: date):
    """
    Normalize a candidate's start/end date strings to ISO dates.

    Args:
        start_raw: startDate text (may hold a whole range)
        end_raw: endDate text
        today: reference date for year inference

    Returns:
        (start_iso, end_iso, stripped_state, warnings)
    """
    warnings: List[str] = []
    if not start_raw:
        warnings.append('start date missing')
        return None, None, None, warnings

    cleaned, stripped_state = strip_date_noise(start_raw)
    if stripped_state:
        warnings.append(f'state code removed from date: {stripped_state}')

    parsed = parse_date_text(cleaned, today)
    if not parsed:
        warnings.append(f'unparseable start date: {start_raw}')
        return None, None, stripped_state, warnings

    start, end = parsed
    if end is None and end_raw:
        end_cleaned, end_state = strip_date_noise(end_raw)
        stripped_state = stripped_state or end_state
        end_parsed = parse_date_text(end_cleaned, today)
        if end_parsed:
            end = end_parsed[1] or end_parsed[0]
        else:
            warnings.append(f'unparseable end date: {end_raw}')

    if not start.year_explicit:
        warnings.append('date missing year; year inferred')

    start_value = start.value
    end_value = end.value if end else None
    end_inferred = end is not None and not end.year_explicit

    if end_inferred and start.year_explicit:
        end_value = _make_date(start_value.year, end_value.month, end_value.day) or end_value

    if end_inferred and end_value < start_value:
        # Range crossing the year boundary (Dec 30 - Jan 2)
        end_value = end_value + relativedelta(years=1)

    if not start.year_explicit and start_value < today:
        start_value = start_value + relativedelta(years=1)
        if end_inferred:
            end_value = end_value + relativedelta(years=1)
    elif start.year_explicit and start_value < today:
        warnings.append('start date is in the past')

    if end_value is None:
        end_value = start_value
    elif end_value < start_value:
        warnings.append('end date before start date')

    return start_value.isoformat(), end_value.isoformat(), stripped_state, warnings
