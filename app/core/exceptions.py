"""
Service-wide exception hierarchy.

Services raise these; the review blueprint registers one handler per type
and maps them to HTTP status codes.  Every exception carries a stable
machine-readable ``code`` so clients can branch without parsing messages.

Usage:
    from app.core.exceptions import ForbiddenError, NotFoundError

    raise NotFoundError(resource="Review", resource_id=review_id)
    raise ForbiddenError("NOT_OWNER", "Only the review owner may update it",
                         details={"review_id": review_id})
"""


class NotFoundError(Exception):
    """Raised when a referenced review, item, scorecard, question, submission
    or resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Review", "ScorecardQuestion").
        resource_id: The id that was looked up.
        code: Stable error code; defaults to ``<RESOURCE>_NOT_FOUND``.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        code: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.code = code or f"{_snake_upper(resource)}_NOT_FOUND"
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a payload is malformed or violates a data-integrity rule
    (unknown status, question from another scorecard, bad phase linkage).

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown for structured API responses.
        code: Stable error code.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        self.details = details or {}
        self.code = code
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised for every access-decision denial.

    ``reason`` is one of the closed set of denial reason codes defined in
    ``app.services.access_policy.Reason``.  Maps to HTTP 403.
    """

    def __init__(self, reason: str, message: str, details: dict | None = None) -> None:
        self.reason = reason
        self.code = reason
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when a route requires an actor and none could be resolved (401)."""

    code = "UNAUTHENTICATED"


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.code = "CONFLICT_DUPLICATE"
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class UpstreamError(Exception):
    """Raised when a directory lookup or storage call fails unexpectedly.

    Authorization never falls open on these: callers convert them either to
    a ForbiddenError (ownership cannot be verified) or let them surface as
    an internal error.

    Args:
        service: Which collaborator failed ("challenge", "resource", "bus").
        message: Explanation for logs and the response body.
        code: Stable error code.
    """

    def __init__(self, service: str, message: str, code: str = "UPSTREAM_UNAVAILABLE") -> None:
        self.service = service
        self.code = code
        super().__init__(message)


def _snake_upper(name: str) -> str:
    out = []
    for i, ch in enumerate(name):
        if ch.isupper() and i and not name[i - 1].isupper():
            out.append("_")
        out.append(ch.upper())
    return "".join(out)
