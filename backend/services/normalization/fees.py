"""
Entry fee parsing.

"Free" / "no charge" -> 0; "$5" or "Admission: $5 (kids free)" -> 5.0;
anything else -> None.
"""
import re
from typing import List, Optional, Tuple, Union

FREE_RE = re.compile(
    r'^\s*(?:free|no charge|no cost|none|n/a|complimentary)\b',
    re.IGNORECASE,
)
DOLLAR_RE = re.compile(
    r'^\s*(?:(?:general\s+)?(?:admission|entry|entrance|fee|cost|price|tickets?)\s*[:\-]?\s*)?'
    r'\$\s*(\d+(?:\.\d{1,2})?)',
    re.IGNORECASE,
)


def parse_fee(value: Union[float, int, str, None]) -> Tuple[Optional[float], List[str]]:
    if value is None:
        return None, []
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < 0:
            return None, [f'negative entry fee dropped: {value}']
        return float(value), []

    text = str(value)
    if FREE_RE.match(text):
        return 0.0, []
    match = DOLLAR_RE.match(text)
    if match:
        return float(match.group(1)), []
    return None, [f'unparseable entry fee: {text}']
