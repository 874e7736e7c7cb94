"""
Contact extraction - one email, one phone and a best-effort name from a
free-text blob such as "Contact John Smith at 555-123-4567 or js@example.com".
"""
import re
from typing import List, Optional, Tuple

EMAIL_RE = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')
PHONE_RE = re.compile(r'(\+?1[-\s.]?)?(\(?\d{3}\)?[-\s.]?)?\d{3}[-\s.]\d{4}')
LABEL_RE = re.compile(
    r'^(?:contact(?:\s+info(?:rmation)?)?|info|call|text|phone|email|e-mail|promoter|organizer|questions\??)\s*[:\-]?\s*',
    re.IGNORECASE,
)
NAME_TAIL_RE = re.compile(r'(?:\s+(?:at|or|via|@|on|-|:))+$', re.IGNORECASE)
MAX_NAME_LENGTH = 60


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Format a US phone number as (555) 123-4567; other shapes pass through."""
    if not value:
        return None
    digits = re.sub(r'\D', '', value)
    if len(digits) == 11 and digits.startswith('1'):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 7:
        return f"{digits[:3]}-{digits[3:]}"
    return ' '.join(value.split())


def normalize_email(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = EMAIL_RE.search(value)
    return match.group(0).lower() if match else None


def _clean_name(text: str) -> Optional[str]:
    name = text.strip(' ,;:-()')
    for _ in range(2):
        name = LABEL_RE.sub('', name)
        name = NAME_TAIL_RE.sub('', name).strip(' ,;:-()')
    if not name or len(name) > MAX_NAME_LENGTH:
        return None
    if not re.search(r'[A-Za-z]', name) or '@' in name:
        return None
    return name


def extract_contact(blob: Optional[str]) -> Tuple[dict, List[str]]:
    """
    Pull contact details from a free-text blob.

    Returns:
        ({'contact_name', 'contact_phone', 'contact_email'}, warnings)
    """
    result = {'contact_name': None, 'contact_phone': None, 'contact_email': None}
    if not blob:
        return result, []

    email_match = EMAIL_RE.search(blob)
    phone_match = PHONE_RE.search(blob)

    if email_match:
        result['contact_email'] = email_match.group(0).lower()
    if phone_match:
        result['contact_phone'] = normalize_phone(phone_match.group(0))

    anchors = [m.start() for m in (email_match, phone_match) if m]
    head = blob[:min(anchors)] if anchors else blob
    result['contact_name'] = _clean_name(head)

    warnings = []
    if not email_match and not phone_match:
        warnings.append('no phone or email found in contact info')
    return result, warnings
