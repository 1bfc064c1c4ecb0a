# app/core/errors.py
"""Failure kinds raised by the issue core.

Every error is scoped to the single operation that raised it; the HTTP layer
maps ``status_code`` / ``code`` onto the response.
"""


class IssueError(Exception):
    status_code = 400
    code = "issue_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(IssueError):
    """A required field is missing or malformed; nothing was attempted."""
    status_code = 400
    code = "validation_error"


class NotFoundError(IssueError):
    status_code = 404
    code = "not_found"

    def __init__(self, issue_id: str):
        super().__init__(f"Issue {issue_id} not found")
        self.issue_id = issue_id


class PermissionDeniedError(IssueError):
    status_code = 403
    code = "forbidden"


class IllegalTransitionError(IssueError):
    status_code = 409
    code = "illegal_transition"

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move issue from {current} to {target}")
        self.current = current
        self.target = target


class ConflictError(IssueError):
    """The issue changed since the caller last read it."""
    status_code = 409
    code = "conflict"


class UpstreamUnavailableError(IssueError):
    status_code = 503
    code = "upstream_unavailable"


class AttachmentUploadError(UpstreamUnavailableError):
    code = "attachment_upload_failed"
