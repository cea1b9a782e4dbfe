"""
Calendar-wide exception hierarchy.

Services raise these types; the calendar blueprint maps them to HTTP
status codes in one place.

Usage:
    from calendario.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ClienteProcesoHito", resource_id=42)
    raise ValidationError("Reason code is required", details={"motivo": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "ClienteProcesoHito").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a calendar business rule.

    Always raised before any persistence or audit side effect, so the
    caller can block the action and show the message inline.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. For a rejected blank
                 deadline it carries ``keep`` with the value the caller
                 must restore.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(Exception):
    """Raised by a record store when a write or read against the backing
    system fails (HTTP error, database error).

    Batch operations catch it per item; it never aborts sibling items.

    Args:
        resource: Entity or endpoint name.
        resource_id: Identifier of the item being written, if any.
        reason: Underlying error text.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.reason = reason
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " could not be persisted"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
