"""Exceptions for idp-store."""

from typing import TYPE_CHECKING, Any

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

if TYPE_CHECKING:
    from .transactions import TransactionWrite


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class IdpStoreError(Exception):
    """
    Base exception for all idp-store errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Category Exceptions
# ---------------------------------------------------------------------------


class ConflictError(IdpStoreError):
    """
    Base exception for expected write conflicts.

    Conflicts are typed outcomes callers are expected to branch on:
    a uniqueness violation or a lost optimistic-lock race. They are
    never retried internally.
    """

    pass


class InfrastructureError(IdpStoreError):
    """
    Base exception for store and configuration failures.

    This includes throttling, unavailable tables and invalid backend
    configuration.
    """

    pass


# ---------------------------------------------------------------------------
# Argument / data Exceptions
# ---------------------------------------------------------------------------


class InvalidArgumentError(IdpStoreError, ValueError):
    """
    Raised when a call is made with invalid arguments.

    Raised before any request is sent to the store.

    Attributes:
        field: Name of the offending argument
        reason: Human-readable explanation
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class MappingError(IdpStoreError):
    """
    Raised when an entity cannot be converted to or from a stored item.

    This indicates a programming error or corrupted data and is fatal.
    """

    def __init__(self, entity_type: str, message: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"Cannot map {entity_type}: {message}")


# ---------------------------------------------------------------------------
# Conflict Exceptions
# ---------------------------------------------------------------------------


class DuplicateKeyError(ConflictError):
    """
    Raised when a save would violate a uniqueness invariant.

    Attributes:
        entity_type: Entity class name (e.g., "Stack")
        constraint: Constraint name (e.g., "name_created_by")
        values: The conflicting key values
    """

    def __init__(self, entity_type: str, constraint: str, values: tuple[Any, ...]) -> None:
        self.entity_type = entity_type
        self.constraint = constraint
        self.values = values
        rendered = ", ".join(str(v) for v in values)
        super().__init__(f"Duplicate {entity_type} {constraint}: ({rendered})")


class OptimisticLockError(ConflictError):
    """
    Raised when a conditioned write lost a race with another writer.

    The stored record was not modified. Refetch, reapply and resubmit
    to retry.

    Attributes:
        entity_type: Entity class name
        entity_id: Identifier of the contended record
        expected_updated_at: The timestamp the caller expected
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        expected_updated_at: Any = None,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_updated_at = expected_updated_at
        msg = f"{entity_type} {entity_id} was modified concurrently"
        if expected_updated_at is not None:
            msg += f" (expected updatedAt {expected_updated_at})"
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Transaction Exceptions
# ---------------------------------------------------------------------------


class TransactionFailure:
    """A single write that caused a transaction to be cancelled."""

    def __init__(
        self,
        index: int,
        write: "TransactionWrite | None",
        code: str,
        message: str | None = None,
    ) -> None:
        self.index = index
        self.write = write
        self.code = code
        self.message = message

    @property
    def description(self) -> str:
        return self.write.description if self.write is not None else "unknown operation"

    @property
    def is_condition_failure(self) -> bool:
        return self.code == "ConditionalCheckFailed"

    def __repr__(self) -> str:
        return f"TransactionFailure({self.index}, {self.description!r}, {self.code!r})"


class TransactionFailedError(IdpStoreError):
    """
    Raised when a transactional write was cancelled.

    None of the writes in the transaction were applied.

    Attributes:
        failures: The writes that caused the cancellation
        cause: The underlying botocore error, if any
    """

    def __init__(
        self,
        failures: list[TransactionFailure],
        cause: Exception | None = None,
    ) -> None:
        self.failures = failures
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.failures:
            return "Transaction cancelled"
        parts = [
            f"operation {f.index + 1} ({f.description}): {f.code}"
            + (f" - {f.message}" if f.message else "")
            for f in self.failures
        ]
        return "Transaction cancelled: " + "; ".join(parts)

    def failed_writes(self) -> list["TransactionWrite"]:
        """Return the writes whose condition or validation failed."""
        return [f.write for f in self.failures if f.write is not None]

    def has_condition_failure(self) -> bool:
        return any(f.is_condition_failure for f in self.failures)


# ---------------------------------------------------------------------------
# Infrastructure Exceptions
# ---------------------------------------------------------------------------


class StoreUnavailableError(InfrastructureError):
    """
    Raised when DynamoDB throttles or is temporarily unavailable.

    This indicates a transient infrastructure issue. The store client's
    own retries have already been exhausted.

    Attributes:
        cause: The underlying exception
        table_name: The DynamoDB table that was being accessed
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        *,
        table_name: str | None = None,
    ) -> None:
        self.cause = cause
        self.table_name = table_name
        if table_name:
            message = f"{message} [table={table_name}]"
        super().__init__(message)


class ConfigurationError(InfrastructureError):
    """Raised when the store configuration is invalid or unsupported."""

    pass


UNAVAILABLE_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "ServiceUnavailable",
        "InternalServerError",
    }
)


def is_unavailable(error: Exception) -> bool:
    """True if ``error`` is a throttling or availability failure from botocore."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code") in UNAVAILABLE_ERROR_CODES
    return isinstance(error, EndpointConnectionError | ConnectTimeoutError | ReadTimeoutError)
