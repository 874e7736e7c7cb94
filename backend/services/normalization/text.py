"""
Free-text cleanup: HTML entities, stray tags, whitespace.
"""
import html
import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

TAG_RE = re.compile(r'<\s*/?\s*[a-zA-Z!][^>]*>')

HTML_WARNING = 'html artifacts removed'


def clean_text(value) -> Tuple[Optional[str], List[str]]:
    """
    Unescape entities, strip tags and collapse whitespace.

    Entities are unescaped until stable so double-escaped input
    ("&amp;amp;") comes out clean in one pass.

    Returns:
        (cleaned text or None when empty, warnings)
    """
    if value is None:
        return None, []

    warnings = []
    text = str(value)
    for _ in range(3):
        unescaped = html.unescape(text)
        if unescaped == text:
            break
        text = unescaped

    if TAG_RE.search(text):
        text = BeautifulSoup(text, 'html.parser').get_text(' ')
        warnings.append(HTML_WARNING)

    cleaned = ' '.join(text.split())
    return cleaned or None, warnings
