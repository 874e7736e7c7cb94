"""Scraper utility functions."""

from .hashing import compute_json_hash, compute_text_key, normalize_json_for_hash

__all__ = [
    "compute_json_hash",
    "compute_text_key",
    "normalize_json_for_hash",
]
