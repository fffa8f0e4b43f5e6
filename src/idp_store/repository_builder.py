"""Builder pattern for constructing the catalog repositories.

Configuration is done via fluent method chaining, then ``build()`` creates
the shared store and returns every repository wired to it.

Example:
    repos = (
        RepositoryBuilder()
        .table_prefix("idp-dev")
        .endpoint_url("http://localhost:8000")
        .page_size(100)
        .create_tables()
        .build()
    )
    repos.stacks.find_by_created_by("dev@example.com")
"""

import os
from typing import Any

from .config import (
    DEFAULT_REGION,
    ENDPOINT_URL_ENV_VAR,
    REGION_ENV_VAR,
    StoreConfig,
    page_size_from_env,
    provider_from_env,
)
from .naming import resolve_table_prefix
from .repositories import Repositories, open_repositories


class RepositoryBuilder:
    """Fluent builder for constructing ``Repositories``.

    All configuration methods return ``self`` for chaining. Unset values
    fall back to the same environment variables ``StoreConfig.from_env``
    reads.
    """

    def __init__(self) -> None:
        self._table_prefix: str | None = None
        self._region: str | None = None
        self._endpoint_url: str | None = None
        self._page_size: int | None = None
        self._client: Any = None
        self._create_tables = False

    # -------------------------------------------------------------------------
    # Connection configuration
    # -------------------------------------------------------------------------

    def table_prefix(self, prefix: str) -> "RepositoryBuilder":
        """Set the prefix of every table name."""
        self._table_prefix = prefix
        return self

    def region(self, name: str) -> "RepositoryBuilder":
        """Set AWS region."""
        self._region = name
        return self

    def endpoint_url(self, url: str) -> "RepositoryBuilder":
        """Set custom endpoint URL (e.g., DynamoDB Local)."""
        self._endpoint_url = url
        return self

    def client(self, client: Any) -> "RepositoryBuilder":
        """Use an existing boto3 DynamoDB client instead of creating one."""
        self._client = client
        return self

    # -------------------------------------------------------------------------
    # Behavior
    # -------------------------------------------------------------------------

    def page_size(self, size: int) -> "RepositoryBuilder":
        """Set the number of items requested per Scan/Query page."""
        self._page_size = size
        return self

    def create_tables(self, enabled: bool = True) -> "RepositoryBuilder":
        """Create missing tables during ``build()``."""
        self._create_tables = enabled
        return self

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def to_config(self) -> StoreConfig:
        """Resolve the configured values into a validated ``StoreConfig``."""
        page_size = self._page_size
        if page_size is None:
            page_size = page_size_from_env(os.environ)
        config = StoreConfig(
            provider=provider_from_env(os.environ),
            table_prefix=resolve_table_prefix(self._table_prefix),
            region=self._region
            or os.environ.get(REGION_ENV_VAR)
            or os.environ.get("AWS_REGION")
            or DEFAULT_REGION,
            endpoint_url=self._endpoint_url
            or os.environ.get(ENDPOINT_URL_ENV_VAR)
            or os.environ.get("AWS_ENDPOINT_URL")
            or None,
            page_size=page_size,
        )
        config.validate()
        return config

    def build(self) -> Repositories:
        """
        Create the store and repositories.

        Raises:
            ConfigurationError: If the configuration is invalid
            InvalidArgumentError: If the table prefix is invalid
        """
        repositories = open_repositories(self.to_config(), client=self._client)
        if self._create_tables:
            repositories.store.create_tables()
        return repositories
