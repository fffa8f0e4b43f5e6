"""
idp-store: DynamoDB persistence for the internal developer platform catalog.

This library stores blueprints, stacks and their supporting catalog entities
in DynamoDB with:
- Uniqueness constraints enforced by transactional uniqueness records
- Secondary-index lookups with a scan fallback
- Complete (never partial) paginated reads
- Optimistic locking on ``updated_at``
- All-or-nothing multi-item writes and API key rotation

Example:
    from idp_store import RepositoryBuilder, Stack, StackType

    repos = RepositoryBuilder().table_prefix("idp").create_tables().build()

    stack = repos.stacks.save(
        Stack(name="orders", created_by="dev@example.com", stack_type=StackType.RESTFUL_API)
    )
    stack.description = "Order service"
    repos.stacks.save_with_optimistic_lock(stack, stack.updated_at)
"""

from importlib.metadata import PackageNotFoundError, version

from .config import StoreConfig
from .exceptions import (
    ConfigurationError,
    ConflictError,
    DuplicateKeyError,
    IdpStoreError,
    InfrastructureError,
    InvalidArgumentError,
    MappingError,
    OptimisticLockError,
    StoreUnavailableError,
    TransactionFailedError,
    TransactionFailure,
)
from .mapper import AttributeMapper
from .models import (
    AdminAuditLog,
    ApiKey,
    ApiKeyType,
    Blueprint,
    BlueprintResource,
    CloudProvider,
    ModuleLocationType,
    ProgrammingLanguage,
    PropertyDataType,
    PropertySchema,
    ResourceCategory,
    ResourceType,
    ResourceTypeCloudMapping,
    Stack,
    StackType,
    Team,
)
from .repositories import (
    AdminAuditLogRepository,
    ApiKeyRepository,
    BlueprintRepository,
    BlueprintResourceRepository,
    CloudProviderRepository,
    PropertySchemaRepository,
    Repositories,
    ResourceTypeCloudMappingRepository,
    ResourceTypeRepository,
    StackRepository,
    TeamRepository,
    open_repositories,
)
from .repository import DynamoRepository, DynamoStore
from .repository_builder import RepositoryBuilder
from .repository_protocol import RepositoryProtocol
from .transactions import MAX_TRANSACTION_ITEMS, TransactionManager, TransactionWrite

try:
    __version__ = version("idp-store")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Wiring
    "StoreConfig",
    "RepositoryBuilder",
    "Repositories",
    "open_repositories",
    "DynamoStore",
    "DynamoRepository",
    "RepositoryProtocol",
    # Repositories
    "StackRepository",
    "BlueprintRepository",
    "BlueprintResourceRepository",
    "ApiKeyRepository",
    "TeamRepository",
    "CloudProviderRepository",
    "ResourceTypeRepository",
    "PropertySchemaRepository",
    "ResourceTypeCloudMappingRepository",
    "AdminAuditLogRepository",
    # Building blocks
    "AttributeMapper",
    "TransactionManager",
    "TransactionWrite",
    "MAX_TRANSACTION_ITEMS",
    # Models
    "Stack",
    "StackType",
    "ProgrammingLanguage",
    "Blueprint",
    "BlueprintResource",
    "ApiKey",
    "ApiKeyType",
    "Team",
    "CloudProvider",
    "ResourceType",
    "ResourceCategory",
    "PropertySchema",
    "PropertyDataType",
    "ResourceTypeCloudMapping",
    "ModuleLocationType",
    "AdminAuditLog",
    # Exceptions
    "IdpStoreError",
    "ConflictError",
    "InfrastructureError",
    "InvalidArgumentError",
    "MappingError",
    "DuplicateKeyError",
    "OptimisticLockError",
    "TransactionFailedError",
    "TransactionFailure",
    "StoreUnavailableError",
    "ConfigurationError",
]
