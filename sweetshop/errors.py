"""
Exception hierarchy for the Sweets service.

Every failure the services report is a subclass of `SweetShopError` and
carries a `code` for programmatic handling. The API layer maps each class
to an HTTP status; the services themselves know nothing about HTTP.
"""


class SweetShopError(Exception):
    """Base exception for all service errors."""

    code: str = "sweetshop_error"

    def __init__(self, message: str = None) -> None:
        if message is None:
            message = "An unspecified error occurred."
        self.message = message
        super().__init__(message)


class InvalidArgument(SweetShopError):
    """Malformed or out-of-range input, detected before any state is touched."""

    code = "invalid_argument"


class NotFound(SweetShopError):
    """The target record does not exist."""

    code = "not_found"


class SweetNotFound(NotFound):
    """No sweet exists with the requested id."""

    def __init__(self, sweet_id) -> None:
        self.sweet_id = sweet_id
        super().__init__("Sweet not found")


class InsufficientStock(SweetShopError):
    """
    A purchase asked for more units than are in stock.

    This is a business outcome, not a fault. Nothing was changed.
    """

    code = "insufficient_stock"

    def __init__(self, sweet_id, available: int, requested: int) -> None:
        self.sweet_id = sweet_id
        self.available = available
        self.requested = requested
        super().__init__("Insufficient stock")


class NothingToUpdate(SweetShopError):
    """An update request supplied no fields."""

    code = "nothing_to_update"

    def __init__(self, message: str = "Nothing to update") -> None:
        super().__init__(message)


class Conflict(SweetShopError):
    """A unique key is already taken."""

    code = "conflict"


class StorageError(SweetShopError):
    """
    The database failed while a unit of work was open.

    The unit of work has been rolled back; the caller may retry.
    """

    code = "storage_error"


class LockTimeout(SweetShopError):
    """
    An item lock could not be acquired within the allowed time.

    Raised when another transaction holds the lock for longer than the
    caller is willing to wait. Nothing was changed; the caller may retry.
    """

    code = "lock_timeout"


class AuthError(SweetShopError):
    """Missing, invalid or expired credentials."""

    code = "auth_error"


class AccessDenied(SweetShopError):
    """The caller is authenticated but their role may not perform the action."""

    code = "access_denied"
