"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Status values, feedback taxonomy, error taxonomy, US state lookups and
scoring weights used across the ingestion pipeline.

DO NOT duplicate these definitions in other files.
"""

# =============================================================================
# PENDING SHOW LIFECYCLE
# =============================================================================

STATUS_PENDING = 'PENDING'
STATUS_EXTRACT_ERROR = 'EXTRACT_ERROR'
STATUS_DUPLICATE = 'DUPLICATE'
STATUS_APPROVED = 'APPROVED'
STATUS_REJECTED = 'REJECTED'

PENDING_STATUSES = [
    STATUS_PENDING,
    STATUS_EXTRACT_ERROR,
    STATUS_DUPLICATE,
    STATUS_APPROVED,
    STATUS_REJECTED,
]

# Statuses an admin can act on without re-opening the record
REVIEWABLE_STATUSES = [STATUS_PENDING, STATUS_DUPLICATE]

# Terminal statuses (only "edit & re-approve" re-opens them)
TERMINAL_STATUSES = [STATUS_APPROVED, STATUS_REJECTED]


# =============================================================================
# ADMIN FEEDBACK
# =============================================================================

ACTION_APPROVE = 'approve'
ACTION_REJECT = 'reject'
ACTION_EDIT = 'edit'

FEEDBACK_ACTIONS = [ACTION_APPROVE, ACTION_REJECT, ACTION_EDIT]

# Fixed rejection/feedback taxonomy
FEEDBACK_TAGS = [
    'DATE_FORMAT',
    'VENUE_MISSING',
    'ADDRESS_POOR',
    'DUPLICATE',
    'MULTI_EVENT_COLLAPSE',
    'EXTRA_HTML',
    'SPAM',
    'STATE_FULL',
    'CITY_MISSING',
]

DUPLICATE_RESOLUTIONS = ['keep_both', 'keep_newer', 'reject_both', 'merge']


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

FETCH_ERROR = 'FETCH_ERROR'
EXTRACT_ERROR = 'EXTRACT_ERROR'
VALIDATION_WARNING = 'VALIDATION_WARNING'
VALIDATION_FATAL = 'VALIDATION_FATAL'
GEOCODE_FAILURE = 'GEOCODE_FAILURE'
DUPLICATE_CONFLICT = 'DUPLICATE_CONFLICT'


# =============================================================================
# SOURCE PRIORITY
# =============================================================================

PRIORITY_MIN = 0
PRIORITY_MAX = 100
PRIORITY_BASE = 50
PRIORITY_APPROVAL_WEIGHT = 2
PRIORITY_REJECTION_WEIGHT = 3

DISABLED_REASON_ERROR_STREAK = 'error_streak'
DISABLED_REASON_LOW_PRIORITY = 'low_priority'
DISABLED_REASON_MANUAL = 'manual'


# =============================================================================
# CANDIDATE QUALITY SCORE (triage only, never auto-approves)
# =============================================================================

QUALITY_WEIGHTS = {
    'name': 20,
    'start_date': 20,
    'city': 15,
    'state': 15,
    'venue_name': 15,
    'address': 15,
}

QUALITY_BAND_HIGH = 80
QUALITY_BAND_MEDIUM = 50


# =============================================================================
# CANDIDATE FIELDS
# =============================================================================

# Keys of a normalized payload (also accepted as edit patch keys)
NORMALIZED_FIELDS = [
    'name',
    'description',
    'url',
    'start_date',
    'end_date',
    'venue_name',
    'address',
    'city',
    'state',
    'zip_code',
    'contact_name',
    'contact_phone',
    'contact_email',
    'entry_fee',
    'entry_fee_text',
    'show_hours',
    'start_time',
    'end_time',
]


# =============================================================================
# US STATES
# =============================================================================

STATE_NAME_TO_CODE = {
    'alabama': 'AL', 'alaska': 'AK', 'arizona': 'AZ', 'arkansas': 'AR',
    'california': 'CA', 'colorado': 'CO', 'connecticut': 'CT', 'delaware': 'DE',
    'florida': 'FL', 'georgia': 'GA', 'hawaii': 'HI', 'idaho': 'ID',
    'illinois': 'IL', 'indiana': 'IN', 'iowa': 'IA', 'kansas': 'KS',
    'kentucky': 'KY', 'louisiana': 'LA', 'maine': 'ME', 'maryland': 'MD',
    'massachusetts': 'MA', 'michigan': 'MI', 'minnesota': 'MN', 'mississippi': 'MS',
    'missouri': 'MO', 'montana': 'MT', 'nebraska': 'NE', 'nevada': 'NV',
    'new hampshire': 'NH', 'new jersey': 'NJ', 'new mexico': 'NM', 'new york': 'NY',
    'north carolina': 'NC', 'north dakota': 'ND', 'ohio': 'OH', 'oklahoma': 'OK',
    'oregon': 'OR', 'pennsylvania': 'PA', 'rhode island': 'RI', 'south carolina': 'SC',
    'south dakota': 'SD', 'tennessee': 'TN', 'texas': 'TX', 'utah': 'UT',
    'vermont': 'VT', 'virginia': 'VA', 'washington': 'WA', 'west virginia': 'WV',
    'wisconsin': 'WI', 'wyoming': 'WY', 'district of columbia': 'DC',
}

STATE_CODES = frozenset(STATE_NAME_TO_CODE.values())


def get_state_code(value: str):
    """
    Map a state name or code to its 2-letter code.

    Args:
        value: 'Texas', 'texas', 'TX', 'tx'

    Returns:
        'TX', or None if the value is not a US state
    """
    if not value:
        return None
    cleaned = value.strip().rstrip('.').strip()
    if cleaned.upper() in STATE_CODES and len(cleaned) == 2:
        return cleaned.upper()
    return STATE_NAME_TO_CODE.get(cleaned.lower())
