"""
Reconciler-wide exception hierarchy.

Findings are not exceptions: an unmapped legacy value, an orphaned record
or a NOT READY verdict are reported as data. The types below cover the
cases that must stop an operation.

Usage:
    from status_reconciler.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Shipment", resource_id="SHP-001")
    raise ValidationError("Unknown unified status", details={"status": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "PO", "Shipment").
        resource_id: The identifier that was looked up.
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
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(Exception):
    """Raised when a configuration value cannot be interpreted.

    Args:
        key: Configuration key (e.g. "SAFE_MODE").
        value: The raw value that was rejected.
    """

    def __init__(self, key: str, value) -> None:
        self.key = key
        self.value = value
        super().__init__(f"{key} must be 'true' or 'false', got {value!r}")


class StoreUnavailableError(Exception):
    """Raised when the database cannot be reached before a job starts.

    Fatal for a batch run: the harness logs it and exits non-zero before
    touching any record.
    """


class CleanupConfirmationError(Exception):
    """Raised when a cleanup plan is executed without a valid confirmation.

    Args:
        plan_id: Identifier of the plan the operator tried to execute.
        reason: Why execution was refused.
    """

    def __init__(self, plan_id: str, reason: str) -> None:
        self.plan_id = plan_id
        self.reason = reason
        super().__init__(f"Cleanup plan {plan_id} refused: {reason}")
