"""Shared test data builders."""


def show_raw(name="Dallas Card Show", start="2026-08-01", city="Dallas", state="TX", **extra):
    """Raw candidate as the extraction model emits it."""
    raw = {"name": name, "startDate": start, "city": city, "state": state}
    raw.update(extra)
    return raw
