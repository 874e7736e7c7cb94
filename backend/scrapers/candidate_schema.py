"""
Candidate Show Schema - fixed field set for model-extracted shows.

The extraction model emits camelCase keys (startDate, venueName...). Normalized
payloads use snake_case field names. Both spellings are accepted, so a
normalized payload validates back into the same model.

- extra='ignore': unknown keys from the model are dropped
- every field is optional; absent required keys are reported as warnings
"""
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Keys the extraction prompt requires on every candidate
REQUIRED_KEYS = {
    'name': 'name',
    'start_date': 'startDate',
}

TEXT_FIELDS = (
    'name', 'description', 'url', 'start_date', 'end_date', 'venue_name',
    'address', 'city', 'state', 'zip_code', 'location', 'contact_name',
    'contact_phone', 'contact_email', 'contact_info', 'entry_fee_text',
    'show_hours', 'start_time', 'end_time',
)


class CandidateShow(BaseModel):
    """One show candidate as emitted by the extraction model."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )

    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None

    start_date: Optional[str] = Field(default=None, alias='startDate')
    end_date: Optional[str] = Field(default=None, alias='endDate')

    venue_name: Optional[str] = Field(default=None, alias='venueName')
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias='zipCode')
    # Compound fallback when the model could not split the location
    location: Optional[str] = None

    contact_name: Optional[str] = Field(default=None, alias='contactName')
    contact_phone: Optional[str] = Field(default=None, alias='contactPhone')
    contact_email: Optional[str] = Field(default=None, alias='contactEmail')
    contact_info: Optional[str] = Field(default=None, alias='contactInfo')

    entry_fee: Optional[Union[float, str]] = Field(default=None, alias='entryFee')
    entry_fee_text: Optional[str] = Field(default=None, alias='entryFeeText')

    show_hours: Optional[str] = Field(default=None, alias='showHours')
    start_time: Optional[str] = Field(default=None, alias='startTime')
    end_time: Optional[str] = Field(default=None, alias='endTime')

    @field_validator(*TEXT_FIELDS, mode='before')
    @classmethod
    def coerce_text(cls, v):
        """Numbers become strings, lists are joined, blanks become None."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, (list, tuple)):
            parts = [str(item).strip() for item in v if item is not None and str(item).strip()]
            return ', '.join(parts) or None
        if isinstance(v, dict):
            return None
        if isinstance(v, str):
            cleaned = v.strip()
            if not cleaned or cleaned.lower() in ('null', 'none', 'n/a', 'tbd', 'tba'):
                return None
            return cleaned
        return v

    @field_validator('entry_fee', mode='before')
    @classmethod
    def coerce_fee(cls, v):
        if v is None or isinstance(v, bool):
            return None
        if not isinstance(v, (int, float, str)):
            return None
        if isinstance(v, str) and not v.strip():
            return None
        return v


def validate_candidate(raw: dict) -> Tuple[CandidateShow, List[str]]:
    """
    Validate a raw candidate dict against the fixed schema.

    Args:
        raw: One element of the model's JSON array

    Returns:
        (CandidateShow, warnings) - warnings list required keys that were
        absent from the payload (distinct from present-but-null)
    """
    warnings = []
    for field_name, alias in REQUIRED_KEYS.items():
        if field_name not in raw and alias not in raw:
            warnings.append(f"missing key: {alias}")
    return CandidateShow.model_validate(raw), warnings
