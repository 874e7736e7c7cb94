"""
Normalization Engine Package

Pure functions that turn a raw extracted candidate into a normalized payload:
- dates: state-code stripping, ranges, year inference and rollover
- location: venue / address / city / state / zip splitting
- contact: email, phone and name extraction
- fees / hours: admission and show-hours parsing
- text: HTML entity and tag cleanup
"""

from .engine import normalize_show, NormalizationResult
from .dates import normalize_dates
from .location import parse_location, LocationParts
from .contact import extract_contact
from .fees import parse_fee
from .hours import parse_hours
from .text import clean_text

__all__ = [
    'normalize_show',
    'NormalizationResult',
    'normalize_dates',
    'parse_location',
    'LocationParts',
    'extract_contact',
    'parse_fee',
    'parse_hours',
    'clean_text',
]
