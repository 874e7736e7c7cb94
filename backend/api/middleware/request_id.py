"""
Request ID middleware - Inject X-Request-ID for request correlation.

Provides:
- Request ID on every request (client-supplied if well-formed, else generated)
- Response header addition
- A logging filter that stamps the id on log records
"""

import logging
import re
import uuid
from typing import Optional

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = 'X-Request-ID'

# Client ids are echoed into logs and headers, so only short token-like values are accepted
SAFE_REQUEST_ID_RE = re.compile(r'^[A-Za-z0-9._-]{1,64}$')


class RequestIdLogFilter(logging.Filter):
    """Adds `request_id` to every record ('-' outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or '-'
        return True


def setup_request_id_middleware(app: Flask) -> None:
    """
    Set up request ID middleware on Flask app.

    Injects X-Request-ID into:
    - Flask's g object (g.request_id)
    - Response headers (X-Request-ID)
    """

    @app.before_request
    def inject_request_id():
        incoming = request.headers.get(REQUEST_ID_HEADER, '')
        g.request_id = incoming if SAFE_REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex

    @app.after_request
    def add_request_id_header(response):
        request_id = getattr(g, 'request_id', None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id() -> Optional[str]:
    """Current request ID, or None outside a request context."""
    if not has_request_context():
        return None
    return getattr(g, 'request_id', None)
