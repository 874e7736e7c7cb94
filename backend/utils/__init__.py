"""
Utility modules for the backend.
"""
from .auth import (
    generate_admin_token,
    verify_token,
    get_claims_from_request,
    require_admin,
)
from .normalize import (
    ValidationError,
    to_int,
    to_bool,
    to_choice,
    to_str_list,
    to_int_list,
    validation_error_response,
)

__all__ = [
    'generate_admin_token',
    'verify_token',
    'get_claims_from_request',
    'require_admin',
    'ValidationError',
    'to_int',
    'to_bool',
    'to_choice',
    'to_str_list',
    'to_int_list',
    'validation_error_response',
]
