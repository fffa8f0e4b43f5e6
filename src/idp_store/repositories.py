"""DynamoDB repositories for each catalog entity."""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from . import schema
from .config import StoreConfig
from .exceptions import InvalidArgumentError, OptimisticLockError
from .locking import lock_condition
from .models import (
    AdminAuditLog,
    ApiKey,
    ApiKeyType,
    Blueprint,
    BlueprintResource,
    CloudProvider,
    PropertySchema,
    ResourceCategory,
    ResourceType,
    ResourceTypeCloudMapping,
    Stack,
    StackType,
    Team,
)
from .repository import DynamoRepository, DynamoStore, WritePlan

logger = logging.getLogger(__name__)


def _first(entities: list[Any]) -> Any:
    return entities[0] if entities else None


# ---------------------------------------------------------------------------
# Stacks
# ---------------------------------------------------------------------------


class StackRepository(DynamoRepository[Stack]):
    """Stacks; ``(name, created_by)`` is unique."""

    table_schema = schema.STACKS

    def find_by_created_by(self, created_by: str | None) -> list[Stack]:
        return self._index.find_by_attribute("created_by", created_by)

    def find_by_stack_type(self, stack_type: StackType | None) -> list[Stack]:
        return self._index.find_by_attribute("stack_type", stack_type)

    def find_by_ephemeral_prefix(self, ephemeral_prefix: str | None) -> list[Stack]:
        return self._index.find_by_attribute("ephemeral_prefix", ephemeral_prefix)

    def find_by_team_id(self, team_id: UUID | None) -> list[Stack]:
        return self._index.find_by_attribute("team_id", team_id)

    def find_by_cloud_provider_id(self, cloud_provider_id: UUID | None) -> list[Stack]:
        return self._index.find_by_attribute("cloud_provider_id", cloud_provider_id)

    def find_by_blueprint_id(self, blueprint_id: UUID | None) -> list[Stack]:
        return self._index.find_by_attribute("blueprint_id", blueprint_id)

    def find_by_cloud_provider_and_created_by(
        self, cloud_provider_id: UUID | None, created_by: str | None
    ) -> list[Stack]:
        return self._index.find_by_attributes(
            cloud_provider_id=cloud_provider_id, created_by=created_by
        )

    def find_by_name(self, name: str | None) -> list[Stack]:
        """Stacks named ``name`` across all creators (full scan)."""
        return self._index.find_by_attribute("name", name)

    def exists_by_name_and_created_by(self, name: str | None, created_by: str | None) -> bool:
        """Check the uniqueness record; either argument None means False."""
        if name is None or created_by is None:
            return False
        return self._find_owner("name_created_by", (name, created_by)) is not None


# ---------------------------------------------------------------------------
# Blueprints
# ---------------------------------------------------------------------------


class BlueprintRepository(DynamoRepository[Blueprint]):
    table_schema = schema.BLUEPRINTS

    def find_by_name(self, name: str | None) -> Blueprint | None:
        return _first(self._index.find_by_attribute("name", name))

    def find_by_is_active(self, is_active: bool | None) -> list[Blueprint]:
        return self._index.find_by_attribute("is_active", is_active)

    def find_by_supported_cloud_provider_id(
        self, cloud_provider_id: UUID | None
    ) -> list[Blueprint]:
        """Blueprints listing ``cloud_provider_id`` as supported (full scan)."""
        if cloud_provider_id is None:
            return []
        return self._index.scan(lambda b: cloud_provider_id in b.supported_cloud_provider_ids)


class BlueprintResourceRepository(DynamoRepository[BlueprintResource]):
    table_schema = schema.BLUEPRINT_RESOURCES

    def find_by_blueprint_id(self, blueprint_id: UUID | None) -> list[BlueprintResource]:
        return self._index.find_by_attribute("blueprint_id", blueprint_id)

    def find_by_resource_type_id(self, resource_type_id: UUID | None) -> list[BlueprintResource]:
        return self._index.find_by_attribute("resource_type_id", resource_type_id)

    def find_by_cloud_provider_id(self, cloud_provider_id: UUID | None) -> list[BlueprintResource]:
        return self._index.find_by_attribute("cloud_provider_id", cloud_provider_id)

    def find_by_is_active(self, is_active: bool | None) -> list[BlueprintResource]:
        return self._index.find_by_attribute("is_active", is_active)

    def find_by_blueprint_id_and_is_active(
        self, blueprint_id: UUID | None, is_active: bool | None
    ) -> list[BlueprintResource]:
        return self._index.find_by_attributes(blueprint_id=blueprint_id, is_active=is_active)


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


class ApiKeyRepository(DynamoRepository[ApiKey]):
    """
    API keys; ``key_hash`` is unique.

    Besides the common operations this supports atomic rotation and
    conditioned revocation. Both only succeed while the stored key is
    active and unchanged since the caller read it.
    """

    table_schema = schema.API_KEYS

    def find_by_key_hash(self, key_hash: str | None) -> ApiKey | None:
        return _first(self._index.find_by_attribute("key_hash", key_hash))

    def find_by_user_email(self, user_email: str | None) -> list[ApiKey]:
        return self._index.find_by_attribute("user_email", user_email)

    def find_by_key_type(self, key_type: ApiKeyType | None) -> list[ApiKey]:
        return self._index.find_by_attribute("key_type", key_type)

    def find_by_is_active(self, is_active: bool | None) -> list[ApiKey]:
        return self._index.find_by_attribute("is_active", is_active)

    def find_by_created_by_email(self, created_by_email: str | None) -> list[ApiKey]:
        return self._index.find_by_attribute("created_by_email", created_by_email)

    def find_by_user_email_and_is_active(
        self, user_email: str | None, is_active: bool | None
    ) -> list[ApiKey]:
        return self._index.find_by_attributes(user_email=user_email, is_active=is_active)

    def _revocation_condition(self, expected_updated_at: datetime) -> dict[str, Any]:
        condition = lock_condition(expected_updated_at)
        condition["ConditionExpression"] += " AND #isActive = :true"
        condition["ExpressionAttributeNames"]["#isActive"] = "isActive"
        condition["ExpressionAttributeValues"][":true"] = {"BOOL": True}
        return condition

    def _plan_revoke(
        self, plan: WritePlan, api_key: ApiKey, revoked_by_email: str | None
    ) -> ApiKey:
        """Add a conditioned put of the revoked copy of ``api_key`` to ``plan``."""
        if api_key is None or api_key.id is None:
            raise InvalidArgumentError("api_key.id", "revocation requires a persisted key")
        expected = api_key.updated_at
        if expected is None:
            raise InvalidArgumentError(
                "api_key.updated_at", "revocation requires the last read updated_at"
            )

        conflict = OptimisticLockError(self.entity_name, api_key.id, expected)
        previous = self._load(api_key.id)
        if previous is None:
            raise conflict

        stamped = self._stamp(api_key, previous)
        revoked = dataclasses.replace(
            stamped,
            is_active=False,
            revoked_at=stamped.updated_at,
            revoked_by_email=revoked_by_email or api_key.revoked_by_email,
        )
        self._plan_put(plan, revoked, previous, self._revocation_condition(expected), conflict)
        return revoked

    def revoke(self, api_key: ApiKey, revoked_by_email: str | None = None) -> ApiKey:
        """
        Revoke an active key in place.

        Raises:
            InvalidArgumentError: If the key has no id or updated_at
            OptimisticLockError: If the key changed or is already revoked
        """
        plan = WritePlan()
        revoked = self._plan_revoke(plan, api_key, revoked_by_email)
        self._execute(plan)
        logger.info("Revoked API key %s", api_key.id)
        return self._apply(api_key, revoked)

    def rotate_key(
        self,
        old_key: ApiKey,
        new_key: ApiKey,
        revoked_by_email: str | None = None,
    ) -> ApiKey:
        """
        Revoke ``old_key`` and create ``new_key`` in one transaction.

        Either both writes are applied or neither is; on failure the
        caller's objects are left untouched.

        Returns:
            The new key, with id and timestamps assigned

        Raises:
            InvalidArgumentError: If ``old_key`` has no id or updated_at
            OptimisticLockError: If ``old_key`` changed or is no longer active
            DuplicateKeyError: If the new key hash is already in use
        """
        self._require_entity(old_key)
        self._require_entity(new_key)

        plan = WritePlan()
        revoked = self._plan_revoke(plan, old_key, revoked_by_email)

        created = self._stamp(new_key, None)
        if created.id == revoked.id:
            raise InvalidArgumentError("new_key.id", "must differ from the rotated key")
        self._plan_put(
            plan,
            created,
            None,
            {
                "ConditionExpression": "attribute_not_exists(#id)",
                "ExpressionAttributeNames": {"#id": "id"},
            },
        )

        self._execute(plan)
        logger.info("Rotated API key %s to %s", old_key.id, created.id)
        self._apply(old_key, revoked)
        return self._apply(new_key, created)


# ---------------------------------------------------------------------------
# Teams and cloud providers
# ---------------------------------------------------------------------------


class TeamRepository(DynamoRepository[Team]):
    table_schema = schema.TEAMS

    def find_by_name(self, name: str | None) -> Team | None:
        return _first(self._index.find_by_attribute("name", name))

    def find_by_is_active(self, is_active: bool | None) -> list[Team]:
        return self._index.find_by_attribute("is_active", is_active)


class CloudProviderRepository(DynamoRepository[CloudProvider]):
    table_schema = schema.CLOUD_PROVIDERS

    def find_by_name(self, name: str | None) -> CloudProvider | None:
        return _first(self._index.find_by_attribute("name", name))

    def find_by_enabled(self, enabled: bool | None) -> list[CloudProvider]:
        return self._index.find_by_attribute("enabled", enabled)


# ---------------------------------------------------------------------------
# Resource types, mappings and property schemas
# ---------------------------------------------------------------------------


class ResourceTypeRepository(DynamoRepository[ResourceType]):
    table_schema = schema.RESOURCE_TYPES

    def find_by_name(self, name: str | None) -> ResourceType | None:
        return _first(self._index.find_by_attribute("name", name))

    def find_by_category(self, category: ResourceCategory | None) -> list[ResourceType]:
        return self._index.find_by_attribute("category", category)

    def find_by_enabled(self, enabled: bool | None) -> list[ResourceType]:
        return self._index.find_by_attribute("enabled", enabled)

    def find_by_category_and_enabled(
        self, category: ResourceCategory | None, enabled: bool | None
    ) -> list[ResourceType]:
        return self._index.find_by_attributes(category=category, enabled=enabled)


class ResourceTypeCloudMappingRepository(DynamoRepository[ResourceTypeCloudMapping]):
    table_schema = schema.RESOURCE_TYPE_CLOUD_MAPPINGS

    def find_by_resource_type_id(
        self, resource_type_id: UUID | None
    ) -> list[ResourceTypeCloudMapping]:
        return self._index.find_by_attribute("resource_type_id", resource_type_id)

    def find_by_cloud_provider_id(
        self, cloud_provider_id: UUID | None
    ) -> list[ResourceTypeCloudMapping]:
        return self._index.find_by_attribute("cloud_provider_id", cloud_provider_id)

    def find_by_enabled(self, enabled: bool | None) -> list[ResourceTypeCloudMapping]:
        return self._index.find_by_attribute("enabled", enabled)

    def find_by_resource_type_id_and_cloud_provider_id(
        self, resource_type_id: UUID | None, cloud_provider_id: UUID | None
    ) -> ResourceTypeCloudMapping | None:
        return _first(
            self._index.find_by_attributes(
                resource_type_id=resource_type_id, cloud_provider_id=cloud_provider_id
            )
        )

    def find_by_resource_type_id_and_enabled(
        self, resource_type_id: UUID | None, enabled: bool | None
    ) -> list[ResourceTypeCloudMapping]:
        return self._index.find_by_attributes(resource_type_id=resource_type_id, enabled=enabled)

    def find_by_cloud_provider_id_and_enabled(
        self, cloud_provider_id: UUID | None, enabled: bool | None
    ) -> list[ResourceTypeCloudMapping]:
        return self._index.find_by_attributes(cloud_provider_id=cloud_provider_id, enabled=enabled)


class PropertySchemaRepository(DynamoRepository[PropertySchema]):
    table_schema = schema.PROPERTY_SCHEMAS

    def find_by_mapping_id(self, mapping_id: UUID | None) -> list[PropertySchema]:
        return self._index.find_by_attribute("mapping_id", mapping_id)

    def find_by_mapping_id_ordered(self, mapping_id: UUID | None) -> list[PropertySchema]:
        """Properties of a mapping by ``display_order``; unordered ones last, by name."""
        properties = self.find_by_mapping_id(mapping_id)
        return sorted(
            properties,
            key=lambda p: (p.display_order is None, p.display_order or 0, p.property_name),
        )

    def find_by_mapping_id_and_required(
        self, mapping_id: UUID | None, required: bool | None
    ) -> list[PropertySchema]:
        return self._index.find_by_attributes(mapping_id=mapping_id, required=required)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class AdminAuditLogRepository(DynamoRepository[AdminAuditLog]):
    """Administrative audit records; ``timestamp`` defaults to the save time."""

    table_schema = schema.ADMIN_AUDIT_LOGS

    def _before_save(self, candidate: AdminAuditLog) -> None:
        if candidate.timestamp is None:
            candidate.timestamp = candidate.updated_at

    def find_by_user_email(self, user_email: str | None) -> list[AdminAuditLog]:
        return self._index.find_by_attribute("user_email", user_email)

    def find_by_entity_type(self, entity_type: str | None) -> list[AdminAuditLog]:
        return self._index.find_by_attribute("entity_type", entity_type)

    def find_by_action(self, action: str | None) -> list[AdminAuditLog]:
        return self._index.find_by_attribute("action", action)

    def find_by_entity_type_and_entity_id(
        self, entity_type: str | None, entity_id: UUID | None
    ) -> list[AdminAuditLog]:
        return self._index.find_by_attributes(entity_type=entity_type, entity_id=entity_id)

    def find_by_timestamp_between(
        self, start: datetime | None, end: datetime | None
    ) -> list[AdminAuditLog]:
        """Records with ``start <= timestamp <= end`` (full scan)."""
        if start is None or end is None:
            return []
        return self._index.scan(
            lambda log: log.timestamp is not None and start <= log.timestamp <= end
        )

    def find_by_user_email_and_timestamp_between(
        self, user_email: str | None, start: datetime | None, end: datetime | None
    ) -> list[AdminAuditLog]:
        """A user's records with ``start <= timestamp <= end``, via an index range query."""
        if user_email is None or start is None or end is None:
            return []
        return self._index.find_by_attribute("user_email", user_email, range_between=(start, end))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Repositories:
    """Every catalog repository, sharing one ``DynamoStore``."""

    store: DynamoStore
    stacks: StackRepository
    blueprints: BlueprintRepository
    blueprint_resources: BlueprintResourceRepository
    api_keys: ApiKeyRepository
    teams: TeamRepository
    cloud_providers: CloudProviderRepository
    resource_types: ResourceTypeRepository
    property_schemas: PropertySchemaRepository
    resource_type_cloud_mappings: ResourceTypeCloudMappingRepository
    admin_audit_logs: AdminAuditLogRepository

    @classmethod
    def from_store(cls, store: DynamoStore) -> "Repositories":
        return cls(
            store=store,
            stacks=StackRepository(store),
            blueprints=BlueprintRepository(store),
            blueprint_resources=BlueprintResourceRepository(store),
            api_keys=ApiKeyRepository(store),
            teams=TeamRepository(store),
            cloud_providers=CloudProviderRepository(store),
            resource_types=ResourceTypeRepository(store),
            property_schemas=PropertySchemaRepository(store),
            resource_type_cloud_mappings=ResourceTypeCloudMappingRepository(store),
            admin_audit_logs=AdminAuditLogRepository(store),
        )

    def close(self) -> None:
        self.store.close()


def open_repositories(config: StoreConfig | None = None, client: Any = None) -> Repositories:
    """
    Open the repositories for the configured backend.

    Args:
        config: Store settings; read from the environment when omitted
        client: Optional pre-built boto3 DynamoDB client

    Raises:
        ConfigurationError: If the provider is not supported
    """
    config = config or StoreConfig.from_env()
    config.validate()
    store = DynamoStore(
        table_prefix=config.table_prefix,
        region=config.region,
        endpoint_url=config.endpoint_url,
        page_size=config.page_size,
        client=client,
    )
    logger.debug("Opened %s store with table prefix %s", config.provider, config.table_prefix)
    return Repositories.from_store(store)
