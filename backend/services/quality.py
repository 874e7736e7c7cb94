"""
Candidate quality score - weighted completeness of the fields an admin
needs to publish a show. Triage aid only; never used to auto-approve.
"""
import re
from typing import Any, Dict, List, Optional

from constants import QUALITY_WEIGHTS, QUALITY_BAND_HIGH, QUALITY_BAND_MEDIUM

TAG_RE = re.compile(r'<[a-zA-Z/][^>]*>|&[a-z]+;')


def compute_quality_score(payload: Optional[Dict[str, Any]]) -> int:
    """Sum of weights for required fields that are present (0-100)."""
    if not payload:
        return 0
    return sum(
        weight for field, weight in QUALITY_WEIGHTS.items()
        if payload.get(field) not in (None, '')
    )


def quality_band(score: Optional[int]) -> Optional[str]:
    if score is None:
        return None
    if score >= QUALITY_BAND_HIGH:
        return 'High'
    if score >= QUALITY_BAND_MEDIUM:
        return 'Medium'
    return 'Low'


def find_potential_issues(raw: Optional[Dict[str, Any]]) -> List[str]:
    """
    Hints about a raw candidate that commonly lead to rejection.

    Maps to the feedback taxonomy so admins can reject with the right tag.
    """
    if not raw:
        return []
    issues = []
    name = raw.get('name')
    start = raw.get('startDate') or raw.get('start_date')
    venue = raw.get('venueName') or raw.get('venue_name')
    city = raw.get('city')
    state = raw.get('state')

    if not name:
        issues.append('name missing')
    if not start:
        issues.append('start date missing')
    elif isinstance(start, str):
        if not re.search(r'\b(?:19|20)\d{2}\b', start):
            issues.append('DATE_FORMAT: date has no year')
        if re.search(r'\b[A-Z]{2}\s*$', start):
            issues.append('DATE_FORMAT: state code appended to date')
    if not venue:
        issues.append('VENUE_MISSING: venue missing')
    if not city:
        issues.append('CITY_MISSING: city missing')
    if isinstance(state, str) and len(state.strip()) > 2:
        issues.append('STATE_FULL: state not abbreviated')
    for key in ('name', 'description', 'venueName', 'venue_name'):
        value = raw.get(key)
        if isinstance(value, str) and TAG_RE.search(value):
            issues.append('EXTRA_HTML: html artifacts present')
            break
    return issues
