"""DynamoDB table, index and uniqueness definitions for catalog entities."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from .mapper import attribute_name
from .models import (
    AdminAuditLog,
    ApiKey,
    Blueprint,
    BlueprintResource,
    CloudProvider,
    PropertySchema,
    ResourceType,
    ResourceTypeCloudMapping,
    Stack,
    Team,
)
from .naming import table_name

# Primary key attribute of every entity table
ID_ATTRIBUTE = "id"

# Uniqueness records table
UNIQUE_KEYS_SUFFIX = "unique_keys"
UNIQUE_KEY_ATTRIBUTE = "uniqueKey"
OWNER_ATTRIBUTE = "ownerId"
ENTITY_TYPE_ATTRIBUTE = "entityType"

# Range key of most secondary indexes
CREATED_AT_ATTRIBUTE = "createdAt"

# Suffix of the string shadow attribute carrying an index hash key
SHADOW_SUFFIX = "Key"


@dataclass(frozen=True)
class IndexDefinition:
    """
    A global secondary index over one entity attribute.

    The index is keyed by a string shadow of the attribute (``<attr>Key``),
    so the entity attribute itself is stored unchanged. Values that cannot
    be index keys (empty strings) get no shadow and stay out of the index.

    Attributes:
        field: Entity field the index is keyed by (snake_case)
        range_field: Entity field used as the index range key
    """

    field: str
    range_field: str = "created_at"

    @property
    def source_attribute(self) -> str:
        """Stored attribute holding the entity value."""
        return attribute_name(self.field)

    @property
    def key_attribute(self) -> str:
        """Stored shadow attribute used as the index hash key."""
        return self.source_attribute + SHADOW_SUFFIX

    @property
    def range_attribute(self) -> str:
        return attribute_name(self.range_field)

    @property
    def name(self) -> str:
        return f"{self.source_attribute}-{self.range_attribute}-index"


@dataclass(frozen=True)
class UniqueConstraint:
    """A set of entity fields whose combined value must be unique."""

    name: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class TableSchema:
    """
    Static storage layout of one entity type.

    Indexes are declared in selectivity order: compound lookups query the
    first declared index whose field is part of the predicate.
    """

    entity_type: type
    suffix: str
    indexes: tuple[IndexDefinition, ...] = ()
    unique_constraints: tuple[UniqueConstraint, ...] = ()
    _by_field: dict[str, IndexDefinition] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._by_field.update({index.field: index for index in self.indexes})

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    def table_name(self, prefix: str) -> str:
        return table_name(prefix, self.suffix)

    def index_for(self, field_name: str) -> IndexDefinition | None:
        """Return the index keyed by ``field_name``, or None if undeclared."""
        return self._by_field.get(field_name)

    def prepare_item(self, item: dict[str, Any]) -> dict[str, Any]:
        """
        Add index shadow attributes to a mapped item.

        Strings are copied as-is and booleans become "true"/"false". Empty
        strings get no shadow since DynamoDB rejects them as key values.
        The entity attributes are never changed.
        """
        for index in self.indexes:
            value = item.get(index.source_attribute)
            if value is None:
                continue
            if "BOOL" in value:
                item[index.key_attribute] = {"S": key_string(value["BOOL"])}
            elif value.get("S"):
                item[index.key_attribute] = {"S": value["S"]}
        return item


def key_string(value: Any) -> str:
    """Render an index key or uniqueness value as a string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def unique_key(entity_name: str, constraint: UniqueConstraint, values: tuple[Any, ...]) -> str:
    """Build the uniqueness record key for a constraint's values."""
    rendered = json.dumps([key_string(v) for v in values], separators=(",", ":"))
    return f"{entity_name}#{constraint.name}#{rendered}"


def unique_values(constraint: UniqueConstraint, entity: Any) -> tuple[Any, ...] | None:
    """Return the constrained values of ``entity``, or None if any is unset."""
    values = tuple(getattr(entity, name) for name in constraint.fields)
    if any(v is None for v in values):
        return None
    return values


# ---------------------------------------------------------------------------
# Entity layouts
# ---------------------------------------------------------------------------

STACKS = TableSchema(
    Stack,
    "stacks",
    indexes=(
        IndexDefinition("created_by"),
        IndexDefinition("blueprint_id"),
        IndexDefinition("team_id"),
        IndexDefinition("ephemeral_prefix"),
        IndexDefinition("cloud_provider_id"),
        IndexDefinition("stack_type"),
    ),
    unique_constraints=(UniqueConstraint("name_created_by", ("name", "created_by")),),
)

BLUEPRINTS = TableSchema(
    Blueprint,
    "blueprints",
    indexes=(
        IndexDefinition("name"),
        IndexDefinition("is_active"),
    ),
    unique_constraints=(UniqueConstraint("name", ("name",)),),
)

BLUEPRINT_RESOURCES = TableSchema(
    BlueprintResource,
    "blueprint_resources",
    indexes=(
        IndexDefinition("blueprint_id"),
        IndexDefinition("resource_type_id"),
        IndexDefinition("cloud_provider_id"),
        IndexDefinition("is_active"),
    ),
)

API_KEYS = TableSchema(
    ApiKey,
    "api_keys",
    indexes=(
        IndexDefinition("key_hash"),
        IndexDefinition("user_email"),
        IndexDefinition("created_by_email"),
        IndexDefinition("key_type"),
        IndexDefinition("is_active"),
    ),
    unique_constraints=(UniqueConstraint("key_hash", ("key_hash",)),),
)

TEAMS = TableSchema(
    Team,
    "teams",
    indexes=(
        IndexDefinition("name"),
        IndexDefinition("is_active"),
    ),
    unique_constraints=(UniqueConstraint("name", ("name",)),),
)

CLOUD_PROVIDERS = TableSchema(
    CloudProvider,
    "cloud_providers",
    indexes=(
        IndexDefinition("name"),
        IndexDefinition("enabled"),
    ),
    unique_constraints=(UniqueConstraint("name", ("name",)),),
)

RESOURCE_TYPES = TableSchema(
    ResourceType,
    "resource_types",
    indexes=(
        IndexDefinition("name"),
        IndexDefinition("category"),
        IndexDefinition("enabled"),
    ),
    unique_constraints=(UniqueConstraint("name", ("name",)),),
)

PROPERTY_SCHEMAS = TableSchema(
    PropertySchema,
    "property_schemas",
    indexes=(IndexDefinition("mapping_id"),),
    unique_constraints=(
        UniqueConstraint("mapping_id_property_name", ("mapping_id", "property_name")),
    ),
)

RESOURCE_TYPE_CLOUD_MAPPINGS = TableSchema(
    ResourceTypeCloudMapping,
    "resource_type_cloud_mappings",
    indexes=(
        IndexDefinition("resource_type_id"),
        IndexDefinition("cloud_provider_id"),
        IndexDefinition("enabled"),
    ),
    unique_constraints=(
        UniqueConstraint(
            "resource_type_id_cloud_provider_id", ("resource_type_id", "cloud_provider_id")
        ),
    ),
)

ADMIN_AUDIT_LOGS = TableSchema(
    AdminAuditLog,
    "admin_audit_logs",
    indexes=(
        IndexDefinition("user_email", range_field="timestamp"),
        IndexDefinition("entity_type", range_field="timestamp"),
        IndexDefinition("action", range_field="timestamp"),
    ),
)

TABLE_SCHEMAS: tuple[TableSchema, ...] = (
    STACKS,
    BLUEPRINTS,
    BLUEPRINT_RESOURCES,
    API_KEYS,
    TEAMS,
    CLOUD_PROVIDERS,
    RESOURCE_TYPES,
    PROPERTY_SCHEMAS,
    RESOURCE_TYPE_CLOUD_MAPPINGS,
    ADMIN_AUDIT_LOGS,
)


def schema_for(entity_type: type) -> TableSchema:
    for table_schema in TABLE_SCHEMAS:
        if table_schema.entity_type is entity_type:
            return table_schema
    raise KeyError(f"no table schema for {entity_type.__name__}")


# ---------------------------------------------------------------------------
# CreateTable definitions
# ---------------------------------------------------------------------------


def get_table_definition(table_schema: TableSchema, prefix: str) -> dict[str, Any]:
    """
    Get the DynamoDB table definition of an entity table for CreateTable.

    Returns a dictionary suitable for boto3 create_table().
    """
    attributes = {ID_ATTRIBUTE: "S"}
    indexes = []
    for index in table_schema.indexes:
        attributes[index.key_attribute] = "S"
        attributes[index.range_attribute] = "S"
        indexes.append(
            {
                "IndexName": index.name,
                "KeySchema": [
                    {"AttributeName": index.key_attribute, "KeyType": "HASH"},
                    {"AttributeName": index.range_attribute, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        )

    definition: dict[str, Any] = {
        "TableName": table_schema.table_name(prefix),
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": kind} for name, kind in attributes.items()
        ],
        "KeySchema": [{"AttributeName": ID_ATTRIBUTE, "KeyType": "HASH"}],
    }
    if indexes:
        definition["GlobalSecondaryIndexes"] = indexes
    return definition


def get_unique_keys_table_definition(prefix: str) -> dict[str, Any]:
    """Get the CreateTable definition of the uniqueness records table."""
    return {
        "TableName": table_name(prefix, UNIQUE_KEYS_SUFFIX),
        "BillingMode": "PAY_PER_REQUEST",
        "AttributeDefinitions": [
            {"AttributeName": UNIQUE_KEY_ATTRIBUTE, "AttributeType": "S"},
        ],
        "KeySchema": [{"AttributeName": UNIQUE_KEY_ATTRIBUTE, "KeyType": "HASH"}],
    }


def get_table_definitions(prefix: str) -> list[dict[str, Any]]:
    """Get CreateTable definitions for every table under ``prefix``."""
    definitions = [get_table_definition(s, prefix) for s in TABLE_SCHEMAS]
    definitions.append(get_unique_keys_table_definition(prefix))
    return definitions
