"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Review not found")
    return api_error("NOT_OWNER", "Only the owner may update", status=403,
                     details={"review_id": rid})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants for generic failures.

    Access-decision denials use their own reason codes
    (see ``app.services.access_policy.Reason``) and always map to 403.
    """

    # Validation: HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication: HTTP 401
    UNAUTHENTICATED = "UNAUTHENTICATED"

    # Not-found: HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate: HTTP 409
    CONFLICT_DUPLICATE = "CONFLICT_DUPLICATE"

    # Permissions: HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server: HTTP 500 / 503
    INTERNAL = "ERR_INTERNAL"
    UPSTREAM = "UPSTREAM_UNAVAILABLE"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
    E.UPSTREAM: 503,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (``E.*`` constant or a denial reason).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Structured identifiers relevant to the failure.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)``, drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
