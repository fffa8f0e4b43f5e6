"""Catalog entities persisted by idp-store.

Every entity is a mutable dataclass. ``id``, ``created_at`` and ``updated_at``
are assigned by the repository on save; references to other entities are
stored by id only.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class StackType(Enum):
    """Kind of workload a stack deploys."""

    RESTFUL_API = "RESTFUL_API"
    RESTFUL_SERVERLESS = "RESTFUL_SERVERLESS"
    JAVASCRIPT_WEB_APPLICATION = "JAVASCRIPT_WEB_APPLICATION"
    EVENT_DRIVEN_API = "EVENT_DRIVEN_API"
    EVENT_DRIVEN_SERVERLESS = "EVENT_DRIVEN_SERVERLESS"
    INFRASTRUCTURE = "INFRASTRUCTURE"


class ProgrammingLanguage(Enum):
    """Implementation language/framework of a stack."""

    QUARKUS = "QUARKUS"
    NODE_JS = "NODE_JS"
    REACT = "REACT"
    PYTHON = "PYTHON"
    TYPESCRIPT = "TYPESCRIPT"


class ApiKeyType(Enum):
    """Owner category of an API key."""

    USER = "USER"
    SYSTEM = "SYSTEM"


class ResourceCategory(Enum):
    """Where a resource type may be used."""

    SHARED = "SHARED"
    NON_SHARED = "NON_SHARED"
    BOTH = "BOTH"


class PropertyDataType(Enum):
    """Value type of a configurable resource property."""

    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    LIST = "LIST"


class ModuleLocationType(Enum):
    """Where a Terraform module is fetched from."""

    GIT = "GIT"
    REGISTRY = "REGISTRY"


@dataclass
class Stack:
    """
    A deployable unit created from an optional blueprint.

    ``(name, created_by)`` is unique across all stacks.

    Attributes:
        name: Stack name, unique per creator
        created_by: Creator identity (usually an email)
        stack_type: Kind of workload
        configuration: Free-form nested deployment configuration
        ephemeral_prefix: Prefix shared by short-lived preview stacks
    """

    name: str
    created_by: str
    stack_type: StackType
    description: str | None = None
    cloud_name: str | None = None
    route_path: str | None = None
    repository_url: str | None = None
    programming_language: ProgrammingLanguage | None = None
    is_public: bool | None = None
    team_id: UUID | None = None
    cloud_provider_id: UUID | None = None
    blueprint_id: UUID | None = None
    configuration: dict[str, Any] | None = None
    ephemeral_prefix: str | None = None
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Blueprint:
    """A reusable template of shared infrastructure. ``name`` is unique."""

    name: str
    description: str | None = None
    is_active: bool = True
    supported_cloud_provider_ids: list[UUID] = field(default_factory=list)
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class BlueprintResource:
    """A resource declared inside a blueprint."""

    name: str
    blueprint_id: UUID | None = None
    resource_type_id: UUID | None = None
    cloud_provider_id: UUID | None = None
    description: str | None = None
    configuration: dict[str, Any] = field(default_factory=dict)
    cloud_type: str | None = None
    cloud_specific_properties: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ApiKey:
    """
    A hashed API credential.

    ``key_hash`` is unique. Revocation is a soft state change
    (``is_active=False`` plus ``revoked_at``); the record is kept.
    """

    key_name: str
    key_hash: str
    key_prefix: str
    key_type: ApiKeyType
    created_by_email: str
    user_email: str | None = None
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_by_email: str | None = None
    is_active: bool = True
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """True if the key has an expiry in the past."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(UTC))

    def is_valid(self, now: datetime | None = None) -> bool:
        """True if the key is active, not revoked and not expired."""
        return self.is_active and self.revoked_at is None and not self.is_expired(now)


@dataclass
class Team:
    """A group of users owning stacks. ``name`` is unique."""

    name: str
    description: str | None = None
    is_active: bool = True
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class CloudProvider:
    """A supported cloud (e.g., AWS). ``name`` is unique."""

    name: str
    display_name: str
    description: str | None = None
    enabled: bool = False
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ResourceType:
    """A kind of infrastructure resource (e.g., a database). ``name`` is unique."""

    name: str
    display_name: str
    category: ResourceCategory
    description: str | None = None
    enabled: bool = True
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class PropertySchema:
    """
    One configurable property of a resource-type/cloud mapping.

    ``(mapping_id, property_name)`` is unique.
    """

    mapping_id: UUID
    property_name: str
    display_name: str
    data_type: PropertyDataType
    description: str | None = None
    required: bool = False
    default_value: Any = None
    validation_rules: dict[str, Any] | None = None
    display_order: int | None = None
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ResourceTypeCloudMapping:
    """
    Binds a resource type to its Terraform module on one cloud.

    ``(resource_type_id, cloud_provider_id)`` is unique.
    """

    resource_type_id: UUID
    cloud_provider_id: UUID
    terraform_module_location: str
    module_location_type: ModuleLocationType
    enabled: bool = True
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class AdminAuditLog:
    """An administrative action record. ``timestamp`` defaults to the save time."""

    user_email: str
    action: str
    entity_type: str
    entity_id: UUID | None = None
    changes: dict[str, Any] | None = None
    timestamp: datetime | None = None
    id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


ENTITY_TYPES: tuple[type, ...] = (
    Stack,
    Blueprint,
    BlueprintResource,
    ApiKey,
    Team,
    CloudProvider,
    ResourceType,
    PropertySchema,
    ResourceTypeCloudMapping,
    AdminAuditLog,
)
