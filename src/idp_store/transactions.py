"""Atomic multi-item writes via DynamoDB TransactWriteItems."""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import (
    InvalidArgumentError,
    StoreUnavailableError,
    TransactionFailedError,
    TransactionFailure,
    is_unavailable,
)

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ITEMS = 100
"""TransactWriteItems accepts at most this many operations per call."""

# Cancellation reason codes that mean "try again later" rather than "rejected"
THROTTLED_REASON_CODES = frozenset({"ThrottlingError", "ProvisionedThroughputExceeded"})

_REASONS_IN_MESSAGE = re.compile(r"\[(.*)\]")


@dataclass(frozen=True)
class TransactionWrite:
    """
    One operation of a transactional write.

    Build instances with the ``put``, ``put_with_condition``, ``update``,
    ``delete`` and ``delete_with_condition`` factories.

    Attributes:
        action: "Put", "Update" or "Delete"
        table_name: Target table
        item: Full item for a put
        key: Primary key for an update or delete
        update_expression: SET/REMOVE/ADD expression for an update
        condition_expression: Optional condition the write depends on
        description: Human-readable label used in logs and errors
    """

    action: str
    table_name: str
    item: dict[str, Any] | None = None
    key: dict[str, Any] | None = None
    update_expression: str | None = None
    condition_expression: str | None = None
    expression_attribute_names: dict[str, str] | None = None
    expression_attribute_values: dict[str, Any] | None = None
    description: str = ""

    @classmethod
    def put(
        cls,
        table_name: str,
        item: dict[str, Any],
        description: str | None = None,
    ) -> "TransactionWrite":
        return cls("Put", table_name, item=item, description=description or f"put {table_name}")

    @classmethod
    def put_with_condition(
        cls,
        table_name: str,
        item: dict[str, Any],
        condition_expression: str,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> "TransactionWrite":
        return cls(
            "Put",
            table_name,
            item=item,
            condition_expression=condition_expression,
            expression_attribute_names=expression_attribute_names,
            expression_attribute_values=expression_attribute_values,
            description=description or f"conditional put {table_name}",
        )

    @classmethod
    def update(
        cls,
        table_name: str,
        key: dict[str, Any],
        update_expression: str,
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> "TransactionWrite":
        return cls(
            "Update",
            table_name,
            key=key,
            update_expression=update_expression,
            condition_expression=condition_expression,
            expression_attribute_names=expression_attribute_names,
            expression_attribute_values=expression_attribute_values,
            description=description or f"update {table_name}",
        )

    @classmethod
    def delete(
        cls,
        table_name: str,
        key: dict[str, Any],
        description: str | None = None,
    ) -> "TransactionWrite":
        return cls("Delete", table_name, key=key, description=description or f"delete {table_name}")

    @classmethod
    def delete_with_condition(
        cls,
        table_name: str,
        key: dict[str, Any],
        condition_expression: str,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> "TransactionWrite":
        return cls(
            "Delete",
            table_name,
            key=key,
            condition_expression=condition_expression,
            expression_attribute_names=expression_attribute_names,
            expression_attribute_values=expression_attribute_values,
            description=description or f"conditional delete {table_name}",
        )

    @property
    def has_condition(self) -> bool:
        return self.condition_expression is not None

    def to_request(self) -> dict[str, Any]:
        """Render as one element of ``TransactItems``."""
        body: dict[str, Any] = {"TableName": self.table_name}
        if self.action == "Put":
            body["Item"] = self.item
        else:
            body["Key"] = self.key
        if self.update_expression is not None:
            body["UpdateExpression"] = self.update_expression
        if self.condition_expression is not None:
            body["ConditionExpression"] = self.condition_expression
        if self.expression_attribute_names:
            body["ExpressionAttributeNames"] = self.expression_attribute_names
        if self.expression_attribute_values:
            body["ExpressionAttributeValues"] = self.expression_attribute_values
        return {self.action: body}


def _cancellation_reasons(error: ClientError) -> list[dict[str, Any]]:
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return list(reasons)
    # Older endpoints only report the reason codes inside the message
    message = error.response.get("Error", {}).get("Message", "")
    match = _REASONS_IN_MESSAGE.search(message)
    if not match:
        return []
    return [{"Code": code.strip()} for code in match.group(1).split(",")]


class TransactionManager:
    """
    Executes groups of writes atomically.

    This is the only component that calls ``transact_write_items``; every
    multi-item commit in the package goes through ``execute_transaction``.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    def execute_transaction(self, writes: Sequence[TransactionWrite]) -> None:
        """
        Apply all ``writes`` or none of them.

        Args:
            writes: Operations to commit; an empty sequence is a no-op

        Raises:
            InvalidArgumentError: If more than 100 writes are given
            TransactionFailedError: If DynamoDB cancelled the transaction
            StoreUnavailableError: If DynamoDB throttled or is unreachable
        """
        if not writes:
            return

        if len(writes) > MAX_TRANSACTION_ITEMS:
            raise InvalidArgumentError(
                "writes",
                f"transaction has {len(writes)} operations, "
                f"the maximum is {MAX_TRANSACTION_ITEMS}",
            )

        logger.info("Executing transaction with %d operations", len(writes))
        for position, write in enumerate(writes, start=1):
            logger.debug("  %d: %s", position, write.description)

        try:
            self._client.transact_write_items(TransactItems=[w.to_request() for w in writes])
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == "TransactionCanceledException":
                raise self._cancelled(writes, e) from e
            if is_unavailable(e):
                raise StoreUnavailableError("Transaction failed", e) from e
            raise
        except BotoCoreError as e:
            if is_unavailable(e):
                raise StoreUnavailableError("Transaction failed", e) from e
            raise

        logger.debug("Transaction with %d operations committed", len(writes))

    def _cancelled(
        self, writes: Sequence[TransactionWrite], error: ClientError
    ) -> TransactionFailedError | StoreUnavailableError:
        failures = []
        for index, reason in enumerate(_cancellation_reasons(error)):
            code = reason.get("Code") or "None"
            if code == "None":
                continue
            write = writes[index] if index < len(writes) else None
            failures.append(TransactionFailure(index, write, code, reason.get("Message")))

        for failure in failures:
            logger.warning(
                "Transaction operation %d (%s) failed: %s",
                failure.index + 1,
                failure.description,
                failure.code,
            )

        if failures and all(f.code in THROTTLED_REASON_CODES for f in failures):
            return StoreUnavailableError("Transaction throttled", error)
        return TransactionFailedError(failures, error)
