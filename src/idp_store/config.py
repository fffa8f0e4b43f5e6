"""Store configuration resolved from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .exceptions import ConfigurationError, InvalidArgumentError
from .naming import DEFAULT_TABLE_PREFIX, TABLE_PREFIX_ENV_VAR, validate_table_prefix

PROVIDER_ENV_VAR = "IDP_DATABASE_PROVIDER"
REGION_ENV_VAR = "IDP_DYNAMODB_REGION"
ENDPOINT_URL_ENV_VAR = "IDP_DYNAMODB_ENDPOINT_URL"
PAGE_SIZE_ENV_VAR = "IDP_DYNAMODB_PAGE_SIZE"

DYNAMODB_PROVIDER = "dynamodb"
"""The only backend this package ships."""

DEFAULT_REGION = "us-east-1"


def provider_from_env(env: Mapping[str, str]) -> str:
    """Read the backend name, normalized to lower case."""
    return (env.get(PROVIDER_ENV_VAR) or DYNAMODB_PROVIDER).strip().lower()


def page_size_from_env(env: Mapping[str, str]) -> int | None:
    """
    Read the Scan/Query page size, None when unset.

    Raises:
        ConfigurationError: If the variable is not an integer
    """
    raw_page_size = env.get(PAGE_SIZE_ENV_VAR)
    if not raw_page_size:
        return None
    try:
        return int(raw_page_size)
    except ValueError as e:
        raise ConfigurationError(
            f"{PAGE_SIZE_ENV_VAR} must be an integer, got {raw_page_size!r}"
        ) from e


@dataclass
class StoreConfig:
    """
    Connection settings for the catalog store.

    Attributes:
        provider: Backend name; read once at startup
        table_prefix: Prefix of every table name
        region: AWS region (None lets boto3 resolve it)
        endpoint_url: Custom endpoint, e.g. DynamoDB Local
        page_size: Items requested per Scan/Query page (None for the service default)
    """

    provider: str = DYNAMODB_PROVIDER
    table_prefix: str = DEFAULT_TABLE_PREFIX
    region: str | None = None
    endpoint_url: str | None = None
    page_size: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoreConfig":
        """
        Build a configuration from environment variables.

        ``IDP_DYNAMODB_REGION`` falls back to ``AWS_REGION`` and then
        ``us-east-1``; ``IDP_DYNAMODB_ENDPOINT_URL`` falls back to
        ``AWS_ENDPOINT_URL``.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        config = cls(
            provider=provider_from_env(env),
            table_prefix=env.get(TABLE_PREFIX_ENV_VAR) or DEFAULT_TABLE_PREFIX,
            region=env.get(REGION_ENV_VAR) or env.get("AWS_REGION") or DEFAULT_REGION,
            endpoint_url=env.get(ENDPOINT_URL_ENV_VAR) or env.get("AWS_ENDPOINT_URL") or None,
            page_size=page_size_from_env(env),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """
        Check the configuration.

        Raises:
            ConfigurationError: If any setting is invalid or the provider is unsupported
        """
        if self.provider != DYNAMODB_PROVIDER:
            raise ConfigurationError(
                f"Unsupported database provider {self.provider!r}; "
                f"this package provides {DYNAMODB_PROVIDER!r}"
            )
        try:
            validate_table_prefix(self.table_prefix)
        except InvalidArgumentError as e:
            raise ConfigurationError(str(e)) from e
        if self.page_size is not None and self.page_size < 1:
            raise ConfigurationError(f"page_size must be positive, got {self.page_size}")
