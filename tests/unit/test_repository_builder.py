"""Unit tests for RepositoryBuilder and open_repositories."""

import pytest

from idp_store import RepositoryBuilder, RepositoryProtocol, StoreConfig, open_repositories
from idp_store.exceptions import ConfigurationError, InvalidArgumentError
from idp_store.models import Team
from idp_store.repository_protocol import ApiKeyRepositoryProtocol, StackRepositoryProtocol


class TestBuilderConstruction:
    """Test RepositoryBuilder construction and method chaining."""

    def test_builder_methods_return_self(self):
        builder = RepositoryBuilder()
        assert builder.table_prefix("idp-dev") is builder
        assert builder.region("eu-west-1") is builder
        assert builder.endpoint_url("http://localhost:8000") is builder
        assert builder.page_size(10) is builder
        assert builder.client(None) is builder
        assert builder.create_tables() is builder

    def test_to_config(self, monkeypatch):
        monkeypatch.delenv("IDP_DYNAMODB_PAGE_SIZE", raising=False)
        monkeypatch.delenv("IDP_DYNAMODB_REGION", raising=False)
        monkeypatch.delenv("AWS_REGION", raising=False)
        config = RepositoryBuilder().table_prefix("idp-dev").page_size(10).to_config()
        assert config.table_prefix == "idp-dev"
        assert config.region == "us-east-1"
        assert config.page_size == 10

    def test_environment_fallbacks(self, monkeypatch):
        monkeypatch.setenv("IDP_DYNAMODB_TABLE_PREFIX", "from-env")
        monkeypatch.setenv("IDP_DYNAMODB_REGION", "eu-central-1")
        monkeypatch.setenv("IDP_DYNAMODB_ENDPOINT_URL", "http://localhost:8000")
        config = RepositoryBuilder().to_config()
        assert config.table_prefix == "from-env"
        assert config.region == "eu-central-1"
        assert config.endpoint_url == "http://localhost:8000"

    def test_page_size_from_environment(self, monkeypatch):
        monkeypatch.setenv("IDP_DYNAMODB_PAGE_SIZE", "40")
        assert RepositoryBuilder().to_config().page_size == 40
        assert RepositoryBuilder().page_size(5).to_config().page_size == 5

    def test_invalid_page_size_in_environment(self, monkeypatch):
        monkeypatch.setenv("IDP_DYNAMODB_PAGE_SIZE", "lots")
        with pytest.raises(ConfigurationError, match="IDP_DYNAMODB_PAGE_SIZE"):
            RepositoryBuilder().to_config()

    def test_provider_from_environment(self, monkeypatch):
        monkeypatch.setenv("IDP_DATABASE_PROVIDER", " DynamoDB ")
        assert RepositoryBuilder().to_config().provider == "dynamodb"

        monkeypatch.setenv("IDP_DATABASE_PROVIDER", "postgresql")
        with pytest.raises(ConfigurationError, match="postgresql"):
            RepositoryBuilder().to_config()

    def test_invalid_prefix(self):
        with pytest.raises(InvalidArgumentError):
            RepositoryBuilder().table_prefix("9lives").to_config()

    def test_invalid_page_size(self):
        with pytest.raises(ConfigurationError):
            RepositoryBuilder().page_size(0).to_config()


class TestBuild:
    """Test building repositories against mocked DynamoDB."""

    def test_build_with_create_tables(self, dynamodb_client, unique_prefix):
        repos = (
            RepositoryBuilder()
            .table_prefix(unique_prefix)
            .client(dynamodb_client)
            .create_tables()
            .build()
        )

        team = repos.teams.save(Team(name="platform"))
        assert repos.teams.find_by_id(team.id) == team
        assert repos.store.table_prefix == unique_prefix
        assert repos.teams.table_name == f"{unique_prefix}_teams"

    def test_repositories_match_protocols(self, repos):
        assert isinstance(repos.stacks, StackRepositoryProtocol)
        assert isinstance(repos.api_keys, ApiKeyRepositoryProtocol)
        for name in ("blueprints", "teams", "admin_audit_logs"):
            assert isinstance(getattr(repos, name), RepositoryProtocol)


class TestOpenRepositories:
    """Test provider selection."""

    def test_dynamodb(self, dynamodb_client, unique_prefix):
        repos = open_repositories(StoreConfig(table_prefix=unique_prefix), client=dynamodb_client)
        assert repos.stacks.table_name == f"{unique_prefix}_stacks"
        assert repos.stacks._client is dynamodb_client

    def test_unsupported_provider(self):
        with pytest.raises(ConfigurationError, match="postgresql"):
            open_repositories(StoreConfig(provider="postgresql"))

    def test_builder_rejects_provider_from_environment(self, monkeypatch, dynamodb_client):
        monkeypatch.setenv("IDP_DATABASE_PROVIDER", "postgresql")
        with pytest.raises(ConfigurationError, match="postgresql"):
            RepositoryBuilder().client(dynamodb_client).build()

    def test_reads_environment(self, monkeypatch, dynamodb_client):
        monkeypatch.setenv("IDP_DYNAMODB_TABLE_PREFIX", "env-prefix")
        repos = open_repositories(client=dynamodb_client)
        assert repos.store.table_prefix == "env-prefix"
