"""
Typed exception hierarchy for the workforce kernel.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, log-safe) and structured fields rather
than only a message string.  ``StructuredFormatter`` copies those fields
into the JSON log line as ``exc_<field>``.

    WorkforceKernelError (base)
    |
    +-- ConfigurationError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |   +-- StorageTimeoutError
    |   +-- StorageRequestAbandonedError
    |
    +-- OwnerNotFoundError
    |
    +-- AmendmentError
        +-- AmendmentNotFoundError
        +-- InvalidAmendmentDataError
        +-- ActiveFlagWriteError

Category        | Code                      | When Raised
----------------|---------------------------|------------------------------------------
Config          | CONFIGURATION_ERROR       | Settings file or env value is invalid
Storage         | STORAGE_UNAVAILABLE       | Query or write failed at transport level
                | STORAGE_TIMEOUT           | Store request exceeded its time bound
                | STORAGE_REQUEST_ABANDONED | Caller gave up; transaction rolled back
Owner           | OWNER_NOT_FOUND           | Project / assignment id does not exist
Amendment       | AMENDMENT_NOT_FOUND       | Amendment id does not exist
                | INVALID_AMENDMENT_DATA    | Missing PO number, bad or inverted dates
                | ACTIVE_FLAG_WRITE         | Caller tried to set ``is_active`` directly

"No active amendment" is NOT an error: it is a valid outcome reported as
``RecalcResult.active_amendment_id is None``.
"""


class WorkforceKernelError(Exception):
    """
    Base exception for all workforce kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "WORKFORCE_KERNEL_ERROR"


# Configuration


class ConfigurationError(WorkforceKernelError):
    """A settings source holds an invalid value."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, value: object, reason: str):
        self.setting = setting
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid setting {setting}={value!r}: {reason}")


# Storage


class StorageError(WorkforceKernelError):
    """Base exception for amendment store failures."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """The store could not complete a query or write."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


class StorageTimeoutError(StorageError):
    """A store request did not finish within its time bound."""

    code: str = "STORAGE_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Storage request {operation} timed out after {timeout_seconds}s"
        )


class StorageRequestAbandonedError(StorageError):
    """The caller stopped waiting, so the request's transaction was rolled back."""

    code: str = "STORAGE_REQUEST_ABANDONED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Storage request {operation} abandoned by caller; rolled back")


# Owners


class OwnerNotFoundError(WorkforceKernelError):
    """Project or employee-project assignment was not found."""

    code: str = "OWNER_NOT_FOUND"

    def __init__(self, owner_kind: str, owner_id: str):
        self.owner_kind = owner_kind
        self.owner_id = owner_id
        super().__init__(f"{owner_kind} not found: {owner_id}")


# Amendments


class AmendmentError(WorkforceKernelError):
    """Base exception for PO amendment errors."""

    code: str = "AMENDMENT_ERROR"


class AmendmentNotFoundError(AmendmentError):
    """PO amendment with given ID was not found."""

    code: str = "AMENDMENT_NOT_FOUND"

    def __init__(self, amendment_id: str):
        self.amendment_id = amendment_id
        super().__init__(f"PO amendment not found: {amendment_id}")


class InvalidAmendmentDataError(AmendmentError):
    """PO amendment has malformed or missing fields."""

    code: str = "INVALID_AMENDMENT_DATA"

    def __init__(self, reason: str, amendment_id: str | None = None):
        self.reason = reason
        self.amendment_id = amendment_id
        target = f" {amendment_id}" if amendment_id else ""
        super().__init__(f"Invalid PO amendment{target}: {reason}")


class ActiveFlagWriteError(AmendmentError):
    """
    Caller attempted to set ``is_active`` on an amendment.

    Only the recalculation service decides which amendment is current;
    user-facing edits may change PO number and dates only.
    """

    code: str = "ACTIVE_FLAG_WRITE"

    def __init__(self, amendment_id: str | None = None):
        self.amendment_id = amendment_id
        super().__init__(
            "is_active is managed by PO recalculation and cannot be written directly"
        )
