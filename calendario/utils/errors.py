"""Standardised API error responses.

Usage
-----
    from calendario.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "ClienteProcesoHito not found")
    return api_error(E.VALIDATION_REQUIRED, "motivo is required")
    return api_error(E.BATCH_PARTIAL, "2 of 5 milestones failed", details=outcome.to_dict())
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • BATCH_ prefix for aggregate outcomes of bulk operations
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Server – HTTP 500 / upstream 502
    DATABASE = "ERR_DATABASE"
    UPSTREAM = "ERR_UPSTREAM"
    INTERNAL = "ERR_INTERNAL"

    # Bulk operations – HTTP 207 (partial) / 502 (nothing persisted)
    BATCH_PARTIAL = "BATCH_PARTIAL"
    BATCH_FAILED = "BATCH_FAILED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.DATABASE: 500,
    E.UPSTREAM: 502,
    E.INTERNAL: 500,
    E.BATCH_PARTIAL: 207,
    E.BATCH_FAILED: 502,
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
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (batch outcome, field errors, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
