"""Table naming utilities.

Every table name is ``<prefix>_<suffix>``. The prefix must satisfy the
DynamoDB table-name rules once a suffix is appended:
- Letters, digits, hyphens, underscores and periods only
- Must start with a letter
- Maximum 200 characters (leaves room for the longest suffix)
"""

import os
import re

from .exceptions import InvalidArgumentError

DEFAULT_TABLE_PREFIX = "idp"
"""Default table prefix used by ``StoreConfig`` and ``RepositoryBuilder``."""

TABLE_PREFIX_ENV_VAR = "IDP_DYNAMODB_TABLE_PREFIX"
"""Environment variable for overriding the default table prefix."""

MAX_PREFIX_LENGTH = 200

PREFIX_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")


def validate_table_prefix(prefix: str) -> None:
    """
    Validate a table prefix.

    Args:
        prefix: The user-provided prefix

    Raises:
        InvalidArgumentError: If the prefix cannot form valid table names
    """
    if not prefix:
        raise InvalidArgumentError("table_prefix", "Prefix cannot be empty")

    if " " in prefix:
        raise InvalidArgumentError(
            "table_prefix",
            f"{prefix!r} contains spaces. Use hyphens or underscores instead",
        )

    if not PREFIX_PATTERN.match(prefix):
        raise InvalidArgumentError(
            "table_prefix",
            f"{prefix!r} must start with a letter and contain only letters, digits, "
            "hyphens, underscores and periods",
        )

    if len(prefix) > MAX_PREFIX_LENGTH:
        raise InvalidArgumentError(
            "table_prefix",
            f"Too long. Prefix exceeds {MAX_PREFIX_LENGTH} character limit",
        )


def table_name(prefix: str, suffix: str) -> str:
    """Build the physical table name for ``suffix`` under ``prefix``."""
    return f"{prefix}_{suffix}"


def resolve_table_prefix(prefix: str | None) -> str:
    """Resolve the table prefix from explicit arg, env var, or default.

    Resolution order: ``prefix`` arg → ``IDP_DYNAMODB_TABLE_PREFIX`` env var → ``"idp"``.

    Args:
        prefix: Explicit prefix, or ``None`` to use env/default.

    Returns:
        Validated prefix.
    """
    resolved = prefix or os.environ.get(TABLE_PREFIX_ENV_VAR) or DEFAULT_TABLE_PREFIX
    validate_table_prefix(resolved)
    return resolved
