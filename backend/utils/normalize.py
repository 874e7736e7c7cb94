"""
Input Normalization Utilities
=============================

Single source of truth for parsing admin API inputs (query args and JSON
bodies). Routes call these before handing values to services.

Usage:
    from utils.normalize import to_int, to_bool, ValidationError

    try:
        limit = to_int(request.args.get("limit"), default=50, minimum=1, maximum=500)
    except ValidationError as e:
        return validation_error_response(e)
"""

from typing import Iterable, List, Optional


class ValidationError(ValueError):
    """Raised when input cannot be normalized to expected type."""

    def __init__(self, message: str, field: str = None, received_value=None):
        super().__init__(message)
        self.field = field
        self.received_value = received_value


def to_int(
    value,
    *,
    default: Optional[int] = None,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
    field: str = None
) -> Optional[int]:
    """
    Convert a string (or int) to int, with explicit None handling and bounds.

    Raises:
        ValidationError: If value is not an integer or is out of bounds
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"Expected integer, got: {value!r}", field=field, received_value=value)
    try:
        result = int(str(value).strip())
    except ValueError:
        raise ValidationError(
            f"Expected integer, got: {value!r}",
            field=field,
            received_value=value
        )
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field or 'value'} must be >= {minimum}", field=field, received_value=value)
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field or 'value'} must be <= {maximum}", field=field, received_value=value)
    return result


def to_bool(
    value,
    *,
    default: bool = False,
    field: str = None
) -> bool:
    """
    Convert string to bool.

    Accepts (case-insensitive):
        True: 'true', '1', 'yes', 'on'
        False: 'false', '0', 'no', 'off'
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    lower = str(value).lower()
    if lower in ("true", "1", "yes", "on"):
        return True
    if lower in ("false", "0", "no", "off"):
        return False
    raise ValidationError(
        f"Expected bool, got: {value!r}",
        field=field,
        received_value=value
    )


def to_choice(
    value,
    choices: Iterable[str],
    *,
    default: Optional[str] = None,
    field: str = None,
    upper: bool = False
) -> Optional[str]:
    """Validate a value against a fixed set of strings."""
    if value is None or value == "":
        return default
    text = str(value).strip()
    text = text.upper() if upper else text
    allowed = list(choices)
    if text not in allowed:
        raise ValidationError(
            f"Invalid {field or 'value'}: {value!r}. Expected one of {allowed}",
            field=field,
            received_value=value
        )
    return text


def to_str_list(value, *, field: str = None, upper: bool = False) -> List[str]:
    """
    Accept a JSON list of strings or a comma-separated string.

    Blank entries are dropped; order is preserved and duplicates removed.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise ValidationError(f"Expected list, got: {value!r}", field=field, received_value=value)

    result = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError(f"Expected string items, got: {item!r}", field=field, received_value=value)
        text = item.strip()
        text = text.upper() if upper else text
        if text and text not in result:
            result.append(text)
    return result


def to_int_list(value, *, field: str = None) -> List[int]:
    """Accept a JSON list of integer ids; duplicates removed, order kept."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"Expected list of ids, got: {value!r}", field=field, received_value=value)
    result = []
    for item in value:
        number = to_int(item, field=field)
        if number is None:
            raise ValidationError("Null id in list", field=field, received_value=value)
        if number not in result:
            result.append(number)
    return result


def validation_error_response(error: ValidationError, request_id: str = None) -> tuple:
    """
    Convert ValidationError to the standard 400 error envelope.

    Returns:
        Tuple of (dict, 400) suitable for a Flask response
    """
    body = {
        "code": "VALIDATION_ERROR",
        "message": str(error),
        "requestId": request_id,
    }
    if error.field:
        body["field"] = error.field
    if error.received_value is not None:
        body["receivedValue"] = str(error.received_value)
    return {"error": body}, 400
