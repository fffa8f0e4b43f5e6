"""Pytest fixtures for idp-store tests."""

import uuid

import boto3
import pytest
from moto import mock_aws

from idp_store import DynamoStore, Repositories


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # Unset endpoint overrides to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("IDP_DYNAMODB_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("IDP_DYNAMODB_TABLE_PREFIX", raising=False)
    monkeypatch.delenv("IDP_DATABASE_PROVIDER", raising=False)
    monkeypatch.delenv("IDP_DYNAMODB_PAGE_SIZE", raising=False)


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Mock DynamoDB for tests."""
    with mock_aws():
        yield


@pytest.fixture
def unique_prefix():
    """Generate a unique table prefix for test isolation."""
    return f"test-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def dynamodb_client(mock_dynamodb):
    """Raw boto3 DynamoDB client inside the moto mock."""
    return boto3.client("dynamodb", region_name="us-east-1")


@pytest.fixture
def store(dynamodb_client, unique_prefix):
    """DynamoStore with every catalog table created."""
    store = DynamoStore(table_prefix=unique_prefix, client=dynamodb_client)
    store.create_tables()
    yield store
    store.delete_tables(wait=False)


@pytest.fixture
def small_page_store(dynamodb_client, unique_prefix):
    """DynamoStore reading 25 items per page, to force multi-page results."""
    store = DynamoStore(table_prefix=unique_prefix, client=dynamodb_client, page_size=25)
    store.create_tables()
    yield store
    store.delete_tables(wait=False)


@pytest.fixture
def repos(store):
    """Every catalog repository over the mocked store."""
    return Repositories.from_store(store)
