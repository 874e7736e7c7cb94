"""
Review errors - raised by the review gateway and the publisher.

Each carries the HTTP status and error code the admin API answers with.
"""
from constants import DUPLICATE_CONFLICT


class ReviewError(Exception):
    """Base class for admin review failures."""
    status_code = 400
    code = "REVIEW_ERROR"

    def __init__(self, message: str, pending_id: int = None):
        super().__init__(message)
        self.pending_id = pending_id


class ShowNotFoundError(ReviewError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionError(ReviewError):
    """The record's current status does not allow the requested action."""
    status_code = 409
    code = "INVALID_TRANSITION"


class PublishConflictError(ReviewError):
    """A published show already holds the same natural key."""
    status_code = 409
    code = DUPLICATE_CONFLICT

    def __init__(self, message: str, pending_id: int = None, existing_show_id: int = None):
        super().__init__(message, pending_id=pending_id)
        self.existing_show_id = existing_show_id


class BatchSizeExceededError(ReviewError):
    code = "BATCH_TOO_LARGE"


class FeedbackRequiredError(ReviewError):
    """Rejections need at least one taxonomy tag."""
    code = "FEEDBACK_REQUIRED"
