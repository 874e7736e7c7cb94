"""
Error envelope middleware - Standardize all error responses.

Every error leaves the API in one shape:
{
    "error": {
        "code": "DUPLICATE_CONFLICT",
        "message": "Show 'Card Show' on 2026-08-02 in Austin is already published",
        "requestId": "uuid"
    }
}
"""

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from api.middleware.request_id import REQUEST_ID_HEADER, get_request_id
from services.review_errors import PublishConflictError, ReviewError
from utils.normalize import ValidationError, validation_error_response

logger = logging.getLogger('api.middleware.error')


def error_response(code: str, message: str, status_code: int, **details):
    """Build an error envelope response (details are added under error.details)."""
    request_id = get_request_id()
    body = {
        "error": {
            "code": code,
            "message": message,
            "requestId": request_id,
        }
    }
    details = {k: v for k, v in details.items() if v is not None}
    if details:
        body["error"]["details"] = details

    response = jsonify(body)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response, status_code


def setup_error_handlers(app: Flask) -> None:
    """
    Set up standardized error handlers on Flask app.

    Handles:
    - Review errors (404/409/400 with their own codes)
    - Input validation errors (400 VALIDATION_ERROR)
    - HTTP exceptions (400, 404, 405, ...)
    - Unhandled Python exceptions (500, traceback logged)
    """

    @app.errorhandler(ReviewError)
    def handle_review_error(error):
        if error.status_code >= 409:
            logger.warning(f"{error.code} on pending {error.pending_id}: {error}")
        return error_response(
            error.code,
            str(error),
            error.status_code,
            pendingId=error.pending_id,
            existingShowId=getattr(error, 'existing_show_id', None)
            if isinstance(error, PublishConflictError) else None,
        )

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        body, status = validation_error_response(error, get_request_id())
        response = jsonify(body)
        if body["error"]["requestId"]:
            response.headers[REQUEST_ID_HEADER] = body["error"]["requestId"]
        return response, status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # "Not Found" -> "NOT_FOUND"
        code = error.name.upper().replace(' ', '_')
        return error_response(code, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_generic_error(error):
        logger.exception(f"Unhandled error ({type(error).__name__}): {error}")
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)
