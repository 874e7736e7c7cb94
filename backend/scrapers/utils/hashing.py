"""
Consistent JSON Hashing

Deterministic hashes used for:
- raw candidate dedup on re-scrape (same source, same payload)
- geocode cache keys
"""
import hashlib
import json
from typing import Any


def normalize_json_for_hash(data: Any) -> Any:
    """
    Normalize JSON data for consistent hashing.

    - Sorts dictionary keys
    - Removes None values
    - Rounds floats
    - Collapses whitespace in strings
    """
    if data is None:
        return None

    if isinstance(data, dict):
        return {
            k: normalize_json_for_hash(v)
            for k, v in sorted(data.items())
            if v is not None
        }

    if isinstance(data, (list, tuple)):
        return [normalize_json_for_hash(item) for item in data]

    if isinstance(data, float):
        return round(data, 10)

    if isinstance(data, str):
        return " ".join(data.split())

    return data


def compute_json_hash(data: Any) -> str:
    """
    Compute SHA256 hash of JSON data, insensitive to key order,
    whitespace and null-valued keys.

    Returns:
        64-character hex SHA256 hash
    """
    normalized = normalize_json_for_hash(data)
    json_str = json.dumps(normalized, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()


def compute_text_key(text: str) -> str:
    """Case- and whitespace-insensitive SHA256 key for a lookup string."""
    normalized = " ".join(text.lower().split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
