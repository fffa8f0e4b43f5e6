"""Repository protocols for catalog persistence backends.

Application services depend on these protocols rather than on the DynamoDB
classes. The protocols use ``typing.Protocol`` with ``@runtime_checkable``,
enabling duck typing and ``isinstance()`` checks at runtime.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
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

T = TypeVar("T")


@runtime_checkable
class RepositoryProtocol(Protocol[T]):
    """
    Operations every entity repository provides.

    - **Reads** never return partial results; a missing entity is ``None``.
    - **Writes** update the caller's object in place (id, timestamps).
    - **Bulk writes** come in a per-item form and an all-or-nothing form.

    Example:
        def rename(repo: RepositoryProtocol[Team], team_id: UUID, name: str) -> Team:
            team = repo.find_by_id(team_id)
            team.name = name
            return repo.save_with_optimistic_lock(team, team.updated_at)
    """

    def save(self, entity: T) -> T:
        """
        Insert or overwrite an entity.

        Raises:
            DuplicateKeyError: If a uniqueness constraint is already held
        """
        ...

    def save_all(self, entities: Iterable[T]) -> list[T]:
        """Save entities one at a time (not atomic)."""
        ...

    def save_all_atomic(self, entities: Iterable[T]) -> list[T]:
        """Save entities in one transaction: all or none."""
        ...

    def save_with_optimistic_lock(self, entity: T, expected_updated_at: datetime | None) -> T:
        """
        Overwrite only if the stored ``updated_at`` equals ``expected_updated_at``.

        Raises:
            InvalidArgumentError: If the id or expected timestamp is missing
            OptimisticLockError: If the stored record changed
        """
        ...

    def find_by_id(self, entity_id: UUID | str | None) -> T | None:
        ...

    def find_all(self) -> list[T]:
        ...

    def exists(self, entity_id: UUID | str | None) -> bool:
        ...

    def count(self) -> int:
        ...

    def delete(self, entity: T | None) -> None:
        """Delete an entity; a missing or None entity is a no-op."""
        ...

    def delete_by_id(self, entity_id: UUID | str | None) -> None:
        ...

    def delete_all(self, entities: Iterable[T]) -> None:
        """Delete entities one at a time (not atomic)."""
        ...

    def delete_all_atomic(self, entities: Iterable[T]) -> None:
        """Delete entities in one transaction: all or none."""
        ...


@runtime_checkable
class StackRepositoryProtocol(RepositoryProtocol["Stack"], Protocol):
    def find_by_created_by(self, created_by: str | None) -> list["Stack"]: ...

    def find_by_stack_type(self, stack_type: "StackType | None") -> list["Stack"]: ...

    def find_by_ephemeral_prefix(self, ephemeral_prefix: str | None) -> list["Stack"]: ...

    def find_by_team_id(self, team_id: UUID | None) -> list["Stack"]: ...

    def find_by_cloud_provider_id(self, cloud_provider_id: UUID | None) -> list["Stack"]: ...

    def find_by_blueprint_id(self, blueprint_id: UUID | None) -> list["Stack"]: ...

    def find_by_cloud_provider_and_created_by(
        self, cloud_provider_id: UUID | None, created_by: str | None
    ) -> list["Stack"]: ...

    def find_by_name(self, name: str | None) -> list["Stack"]: ...

    def exists_by_name_and_created_by(self, name: str | None, created_by: str | None) -> bool: ...


@runtime_checkable
class BlueprintRepositoryProtocol(RepositoryProtocol["Blueprint"], Protocol):
    def find_by_name(self, name: str | None) -> "Blueprint | None": ...

    def find_by_is_active(self, is_active: bool | None) -> list["Blueprint"]: ...

    def find_by_supported_cloud_provider_id(
        self, cloud_provider_id: UUID | None
    ) -> list["Blueprint"]: ...


@runtime_checkable
class BlueprintResourceRepositoryProtocol(RepositoryProtocol["BlueprintResource"], Protocol):
    def find_by_blueprint_id(self, blueprint_id: UUID | None) -> list["BlueprintResource"]: ...

    def find_by_resource_type_id(
        self, resource_type_id: UUID | None
    ) -> list["BlueprintResource"]: ...

    def find_by_cloud_provider_id(
        self, cloud_provider_id: UUID | None
    ) -> list["BlueprintResource"]: ...

    def find_by_is_active(self, is_active: bool | None) -> list["BlueprintResource"]: ...

    def find_by_blueprint_id_and_is_active(
        self, blueprint_id: UUID | None, is_active: bool | None
    ) -> list["BlueprintResource"]: ...


@runtime_checkable
class ApiKeyRepositoryProtocol(RepositoryProtocol["ApiKey"], Protocol):
    def find_by_key_hash(self, key_hash: str | None) -> "ApiKey | None": ...

    def find_by_user_email(self, user_email: str | None) -> list["ApiKey"]: ...

    def find_by_key_type(self, key_type: "ApiKeyType | None") -> list["ApiKey"]: ...

    def find_by_is_active(self, is_active: bool | None) -> list["ApiKey"]: ...

    def find_by_created_by_email(self, created_by_email: str | None) -> list["ApiKey"]: ...

    def find_by_user_email_and_is_active(
        self, user_email: str | None, is_active: bool | None
    ) -> list["ApiKey"]: ...

    def revoke(self, api_key: "ApiKey", revoked_by_email: str | None = None) -> "ApiKey":
        """
        Revoke an active key.

        Raises:
            OptimisticLockError: If the key changed or is already revoked
        """
        ...

    def rotate_key(
        self, old_key: "ApiKey", new_key: "ApiKey", revoked_by_email: str | None = None
    ) -> "ApiKey":
        """
        Revoke ``old_key`` and create ``new_key`` atomically.

        Raises:
            OptimisticLockError: If ``old_key`` changed or is no longer active
            DuplicateKeyError: If the new key hash is already in use
        """
        ...


@runtime_checkable
class TeamRepositoryProtocol(RepositoryProtocol["Team"], Protocol):
    def find_by_name(self, name: str | None) -> "Team | None": ...

    def find_by_is_active(self, is_active: bool | None) -> list["Team"]: ...


@runtime_checkable
class CloudProviderRepositoryProtocol(RepositoryProtocol["CloudProvider"], Protocol):
    def find_by_name(self, name: str | None) -> "CloudProvider | None": ...

    def find_by_enabled(self, enabled: bool | None) -> list["CloudProvider"]: ...


@runtime_checkable
class ResourceTypeRepositoryProtocol(RepositoryProtocol["ResourceType"], Protocol):
    def find_by_name(self, name: str | None) -> "ResourceType | None": ...

    def find_by_category(self, category: "ResourceCategory | None") -> list["ResourceType"]: ...

    def find_by_enabled(self, enabled: bool | None) -> list["ResourceType"]: ...

    def find_by_category_and_enabled(
        self, category: "ResourceCategory | None", enabled: bool | None
    ) -> list["ResourceType"]: ...


@runtime_checkable
class PropertySchemaRepositoryProtocol(RepositoryProtocol["PropertySchema"], Protocol):
    def find_by_mapping_id(self, mapping_id: UUID | None) -> list["PropertySchema"]: ...

    def find_by_mapping_id_ordered(self, mapping_id: UUID | None) -> list["PropertySchema"]: ...

    def find_by_mapping_id_and_required(
        self, mapping_id: UUID | None, required: bool | None
    ) -> list["PropertySchema"]: ...


@runtime_checkable
class ResourceTypeCloudMappingRepositoryProtocol(
    RepositoryProtocol["ResourceTypeCloudMapping"], Protocol
):
    def find_by_resource_type_id(
        self, resource_type_id: UUID | None
    ) -> list["ResourceTypeCloudMapping"]: ...

    def find_by_cloud_provider_id(
        self, cloud_provider_id: UUID | None
    ) -> list["ResourceTypeCloudMapping"]: ...

    def find_by_enabled(self, enabled: bool | None) -> list["ResourceTypeCloudMapping"]: ...

    def find_by_resource_type_id_and_cloud_provider_id(
        self, resource_type_id: UUID | None, cloud_provider_id: UUID | None
    ) -> "ResourceTypeCloudMapping | None": ...

    def find_by_resource_type_id_and_enabled(
        self, resource_type_id: UUID | None, enabled: bool | None
    ) -> list["ResourceTypeCloudMapping"]: ...

    def find_by_cloud_provider_id_and_enabled(
        self, cloud_provider_id: UUID | None, enabled: bool | None
    ) -> list["ResourceTypeCloudMapping"]: ...


@runtime_checkable
class AdminAuditLogRepositoryProtocol(RepositoryProtocol["AdminAuditLog"], Protocol):
    def find_by_user_email(self, user_email: str | None) -> list["AdminAuditLog"]: ...

    def find_by_entity_type(self, entity_type: str | None) -> list["AdminAuditLog"]: ...

    def find_by_action(self, action: str | None) -> list["AdminAuditLog"]: ...

    def find_by_entity_type_and_entity_id(
        self, entity_type: str | None, entity_id: UUID | None
    ) -> list["AdminAuditLog"]: ...

    def find_by_timestamp_between(
        self, start: datetime | None, end: datetime | None
    ) -> list["AdminAuditLog"]: ...

    def find_by_user_email_and_timestamp_between(
        self, user_email: str | None, start: datetime | None, end: datetime | None
    ) -> list["AdminAuditLog"]: ...
