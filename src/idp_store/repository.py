"""DynamoDB store handle and the generic entity repository."""

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4

import boto3  # type: ignore[import-untyped]
from botocore.exceptions import BotoCoreError, ClientError

from . import schema
from .exceptions import (
    DuplicateKeyError,
    IdpStoreError,
    InvalidArgumentError,
    OptimisticLockError,
    StoreUnavailableError,
    TransactionFailedError,
    TransactionFailure,
    is_unavailable,
)
from .index_query import IndexQueryStrategy
from .locking import lock_condition, next_timestamp, require_lock_arguments
from .mapper import AttributeMapper
from .naming import resolve_table_prefix, table_name
from .pagination import count_items
from .transactions import TransactionManager, TransactionWrite

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Uniqueness records may be written when free or already held by the same owner
_CLAIM_CONDITION = "attribute_not_exists(#uniqueKey) OR #ownerId = :ownerId"

# Ownership moves between entities only from the owner being replaced
_TRANSFER_CONDITION = "attribute_not_exists(#uniqueKey) OR #ownerId = :previousOwner"

# Single-item calls used when a plan holds one write
_SINGLE_WRITE_OPERATIONS = {"Put": "put_item", "Update": "update_item", "Delete": "delete_item"}


class DynamoStore:
    """
    Shared DynamoDB connection for all catalog repositories.

    Owns one boto3 client (thread-safe, reused by every repository) and
    the table-level operations used for provisioning.
    """

    def __init__(
        self,
        table_prefix: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        page_size: int | None = None,
        client: Any = None,
    ) -> None:
        self.table_prefix = resolve_table_prefix(table_prefix)
        self.region = region
        self.endpoint_url = endpoint_url
        self.page_size = page_size
        self._client = client
        self._transactions: TransactionManager | None = None

    @property
    def client(self) -> Any:
        """Get or create the DynamoDB client."""
        if self._client is None:
            self._client = boto3.client(
                "dynamodb",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
            )
        return self._client

    @property
    def transactions(self) -> TransactionManager:
        if self._transactions is None:
            self._transactions = TransactionManager(self.client)
        return self._transactions

    @property
    def unique_keys_table(self) -> str:
        return table_name(self.table_prefix, schema.UNIQUE_KEYS_SUFFIX)

    def table_names(self) -> list[str]:
        """Names of every table under this store's prefix."""
        return [d["TableName"] for d in schema.get_table_definitions(self.table_prefix)]

    def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._transactions = None

    # -------------------------------------------------------------------------
    # Table operations
    # -------------------------------------------------------------------------

    def create_tables(self, wait: bool = True) -> list[str]:
        """
        Create every catalog table that does not exist yet.

        Returns:
            Names of the tables that were created
        """
        created = []
        for definition in schema.get_table_definitions(self.table_prefix):
            name = definition["TableName"]
            try:
                self.client.create_table(**definition)
            except ClientError as e:
                if e.response["Error"]["Code"] != "ResourceInUseException":
                    raise
                logger.debug("Table %s already exists", name)
                continue
            logger.info("Created table %s", name)
            created.append(name)

        if wait:
            waiter = self.client.get_waiter("table_exists")
            for name in created:
                waiter.wait(TableName=name)
        return created

    def delete_tables(self, wait: bool = True) -> list[str]:
        """
        Delete every catalog table under this store's prefix.

        Returns:
            Names of the tables that were deleted
        """
        deleted = []
        for name in self.table_names():
            try:
                self.client.delete_table(TableName=name)
            except ClientError as e:
                if e.response["Error"]["Code"] != "ResourceNotFoundException":
                    raise
                continue
            logger.info("Deleted table %s", name)
            deleted.append(name)

        if wait:
            waiter = self.client.get_waiter("table_not_exists")
            for name in deleted:
                waiter.wait(TableName=name)
        return deleted

    def table_status(self) -> dict[str, dict[str, Any] | None]:
        """
        Describe every table under this store's prefix.

        Returns:
            Table name mapped to ``{"status", "item_count"}``, or None if
            the table does not exist. ``item_count`` is DynamoDB's
            periodically refreshed estimate.
        """
        status: dict[str, dict[str, Any] | None] = {}
        for name in self.table_names():
            try:
                response = self.client.describe_table(TableName=name)
            except ClientError as e:
                if e.response["Error"]["Code"] != "ResourceNotFoundException":
                    raise
                status[name] = None
                continue
            table = response["Table"]
            status[name] = {
                "status": table["TableStatus"],
                "item_count": table.get("ItemCount", 0),
            }
        return status


@dataclass
class UniqueKeyWrite:
    """
    The planned change to one uniqueness record.

    Attributes:
        index: Position of the record's write in the plan
        claimed_by: Entity taking the record, None for a plain release
        released_by: Entity giving the record up, None for a plain claim
    """

    index: int
    claimed_by: UUID | None = None
    released_by: UUID | None = None


@dataclass
class WritePlan:
    """
    Writes to commit together, with the error each condition failure means.

    A uniqueness record is written at most once per plan. When one entity
    releases a record another entity claims, both become a single transfer.

    Attributes:
        writes: Operations in commit order
        conflicts: Exception to raise when the write at an index fails its condition
        unique_keys: Planned uniqueness record changes by record key
    """

    writes: list[TransactionWrite] = field(default_factory=list)
    conflicts: dict[int, IdpStoreError] = field(default_factory=dict)
    unique_keys: dict[str, UniqueKeyWrite] = field(default_factory=dict)

    def add(self, write: TransactionWrite, conflict: IdpStoreError | None = None) -> int:
        index = len(self.writes)
        self.writes.append(write)
        if conflict is not None:
            self.conflicts[index] = conflict
        return index


class DynamoRepository(Generic[T]):
    """
    Generic DynamoDB repository for one catalog entity type.

    Subclasses set ``table_schema``. Entities with uniqueness constraints
    are written together with their uniqueness records in one transaction;
    the others use single-item writes.
    """

    table_schema: ClassVar[schema.TableSchema]

    def __init__(self, store: DynamoStore) -> None:
        self._store = store
        self._client = store.client
        self._transactions = store.transactions
        self._mapper = AttributeMapper()
        self.table_name = self.table_schema.table_name(store.table_prefix)
        self.unique_keys_table = store.unique_keys_table
        self._index: IndexQueryStrategy[T] = IndexQueryStrategy(
            self._client,
            self.table_name,
            self.table_schema,
            self._mapper,
            store.page_size,
        )

    @property
    def entity_name(self) -> str:
        return self.table_schema.entity_name

    # -------------------------------------------------------------------------
    # Item helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _key(entity_id: UUID | str) -> dict[str, Any]:
        return {schema.ID_ATTRIBUTE: {"S": str(entity_id)}}

    def _to_item(self, entity: T) -> dict[str, Any]:
        return self.table_schema.prepare_item(self._mapper.to_item(entity))

    def _to_entity(self, item: dict[str, Any]) -> T:
        return self._mapper.to_entity(self.table_schema.entity_type, item)

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Invoke a single-item client operation, translating availability errors."""
        try:
            return getattr(self._client, operation)(**kwargs)
        except (ClientError, BotoCoreError) as e:
            if is_unavailable(e):
                raise StoreUnavailableError(
                    f"{operation} failed", e, table_name=kwargs.get("TableName")
                ) from e
            raise

    def _load(self, entity_id: UUID | str) -> T | None:
        """Strongly consistent read of one entity."""
        response = self._call(
            "get_item",
            TableName=self.table_name,
            Key=self._key(entity_id),
            ConsistentRead=True,
        )
        item = response.get("Item")
        return self._to_entity(item) if item else None

    def _stamp(self, entity: T, previous: T | None) -> T:
        """Return a copy of ``entity`` with id and timestamps assigned for a save."""
        entity_id = getattr(entity, "id") or uuid4()
        if previous is not None:
            created_at = getattr(previous, "created_at")
            updated_at = next_timestamp(getattr(previous, "updated_at"))
        else:
            updated_at = next_timestamp()
            created_at = getattr(entity, "created_at") or updated_at
        return dataclasses.replace(
            entity,  # type: ignore[type-var]
            id=entity_id,
            created_at=created_at,
            updated_at=updated_at,
        )

    @staticmethod
    def _apply(target: T, source: T) -> T:
        """Copy every field of ``source`` onto the caller's ``target``."""
        for f in dataclasses.fields(source):  # type: ignore[arg-type]
            setattr(target, f.name, getattr(source, f.name))
        return target

    def _require_entity(self, entity: T | None) -> T:
        if entity is None:
            raise InvalidArgumentError("entity", "cannot be None")
        if not isinstance(entity, self.table_schema.entity_type):
            raise InvalidArgumentError(
                "entity",
                f"expected {self.entity_name}, got {type(entity).__name__}",
            )
        return entity

    # -------------------------------------------------------------------------
    # Write planning
    # -------------------------------------------------------------------------

    def _unique_record_key(self, key: str) -> dict[str, Any]:
        return {schema.UNIQUE_KEY_ATTRIBUTE: {"S": key}}

    def _claim_values(self, owner_id: UUID) -> dict[str, Any]:
        return {":ownerId": {"S": str(owner_id)}}

    @staticmethod
    def _claim_names() -> dict[str, str]:
        return {"#uniqueKey": schema.UNIQUE_KEY_ATTRIBUTE, "#ownerId": schema.OWNER_ATTRIBUTE}

    def _plan_put(
        self,
        plan: WritePlan,
        candidate: T,
        previous: T | None,
        condition: dict[str, Any] | None = None,
        conflict: IdpStoreError | None = None,
    ) -> None:
        """Add the entity put and its uniqueness record changes to ``plan``."""
        entity_id = getattr(candidate, "id")
        item = self._to_item(candidate)
        description = f"put {self.entity_name} {entity_id}"
        if condition is None:
            plan.add(TransactionWrite.put(self.table_name, item, description))
        else:
            plan.add(
                TransactionWrite.put_with_condition(
                    self.table_name,
                    item,
                    condition["ConditionExpression"],
                    condition.get("ExpressionAttributeNames"),
                    condition.get("ExpressionAttributeValues"),
                    description=f"conditional {description}",
                ),
                conflict,
            )

        for constraint in self.table_schema.unique_constraints:
            values = schema.unique_values(constraint, candidate)
            new_key = schema.unique_key(self.entity_name, constraint, values) if values else None
            old_values = schema.unique_values(constraint, previous) if previous else None
            old_key = (
                schema.unique_key(self.entity_name, constraint, old_values) if old_values else None
            )

            if new_key is not None:
                duplicate = DuplicateKeyError(self.entity_name, constraint.name, values or ())
                self._plan_claim(plan, new_key, entity_id, duplicate)

            if old_key is not None and old_key != new_key:
                self._plan_release(plan, old_key, entity_id)

    def _owner_record(self, key: str, owner_id: UUID) -> dict[str, Any]:
        return {
            schema.UNIQUE_KEY_ATTRIBUTE: {"S": key},
            schema.OWNER_ATTRIBUTE: {"S": str(owner_id)},
            schema.ENTITY_TYPE_ATTRIBUTE: {"S": self.entity_name},
        }

    def _transfer(self, key: str, previous_owner: UUID, owner_id: UUID) -> TransactionWrite:
        return TransactionWrite.put_with_condition(
            self.unique_keys_table,
            self._owner_record(key, owner_id),
            _TRANSFER_CONDITION,
            self._claim_names(),
            {":previousOwner": {"S": str(previous_owner)}},
            description=f"transfer {key} from {previous_owner} to {self.entity_name} {owner_id}",
        )

    def _plan_claim(
        self, plan: WritePlan, key: str, owner_id: UUID, duplicate: DuplicateKeyError
    ) -> None:
        planned = plan.unique_keys.get(key)
        if planned is None:
            index = plan.add(
                TransactionWrite.put_with_condition(
                    self.unique_keys_table,
                    self._owner_record(key, owner_id),
                    _CLAIM_CONDITION,
                    self._claim_names(),
                    self._claim_values(owner_id),
                    description=f"claim {key} for {self.entity_name} {owner_id}",
                ),
                duplicate,
            )
            plan.unique_keys[key] = UniqueKeyWrite(index, claimed_by=owner_id)
            return
        releaser = planned.released_by
        if planned.claimed_by is not None or releaser is None:
            raise duplicate
        if releaser == owner_id:
            raise InvalidArgumentError(
                "entities", f"{self.entity_name} {owner_id} both claims and releases {key}"
            )
        plan.writes[planned.index] = self._transfer(key, releaser, owner_id)
        plan.conflicts[planned.index] = duplicate
        planned.claimed_by = owner_id

    def _plan_release(self, plan: WritePlan, key: str, owner_id: UUID) -> None:
        planned = plan.unique_keys.get(key)
        if planned is None:
            index = plan.add(
                TransactionWrite.delete_with_condition(
                    self.unique_keys_table,
                    self._unique_record_key(key),
                    _CLAIM_CONDITION,
                    self._claim_names(),
                    self._claim_values(owner_id),
                    description=f"release {key} from {self.entity_name} {owner_id}",
                )
            )
            plan.unique_keys[key] = UniqueKeyWrite(index, released_by=owner_id)
            return
        claimer = planned.claimed_by
        if planned.released_by is not None or claimer is None or claimer == owner_id:
            raise InvalidArgumentError(
                "entities", f"more than one write in the batch releases uniqueness record {key}"
            )
        # the claim planned earlier now takes the record over from its current owner
        plan.writes[planned.index] = self._transfer(key, owner_id, claimer)
        planned.released_by = owner_id

    def _plan_delete(self, plan: WritePlan, existing: T) -> None:
        entity_id = getattr(existing, "id")
        plan.add(
            TransactionWrite.delete(
                self.table_name,
                self._key(entity_id),
                f"delete {self.entity_name} {entity_id}",
            )
        )
        for constraint in self.table_schema.unique_constraints:
            values = schema.unique_values(constraint, existing)
            if values:
                self._plan_release(
                    plan, schema.unique_key(self.entity_name, constraint, values), entity_id
                )

    def _write_single(self, write: TransactionWrite) -> None:
        request = write.to_request()[write.action]
        operation = _SINGLE_WRITE_OPERATIONS[write.action]
        try:
            self._call(operation, **request)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ConditionalCheckFailedException":
                raise
            message = e.response["Error"].get("Message")
            failure = TransactionFailure(0, write, "ConditionalCheckFailed", message)
            raise TransactionFailedError([failure], e) from e

    def _execute(self, plan: WritePlan) -> None:
        """Commit ``plan``, raising the planned conflict for a failed condition."""
        try:
            if len(plan.writes) == 1:
                self._write_single(plan.writes[0])
            else:
                self._transactions.execute_transaction(plan.writes)
        except TransactionFailedError as e:
            for failure in e.failures:
                if failure.is_condition_failure and failure.index in plan.conflicts:
                    raise plan.conflicts[failure.index] from e
            raise

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def find_by_id(self, entity_id: UUID | str | None) -> T | None:
        """Return the entity with ``entity_id``, or None (also for a None id)."""
        if entity_id is None:
            return None
        return self._load(entity_id)

    def find_all(self) -> list[T]:
        """Return every entity of this type, reading all pages."""
        return self._index.scan()

    def exists(self, entity_id: UUID | str | None) -> bool:
        if entity_id is None:
            return False
        response = self._call(
            "get_item",
            TableName=self.table_name,
            Key=self._key(entity_id),
            ProjectionExpression="#id",
            ExpressionAttributeNames={"#id": schema.ID_ATTRIBUTE},
            ConsistentRead=True,
        )
        return "Item" in response

    def count(self) -> int:
        """Count every entity of this type, reading all pages."""
        return count_items(self._client, "scan", self._store.page_size, TableName=self.table_name)

    def _find_owner(self, constraint_name: str, values: tuple[Any, ...]) -> UUID | None:
        """Look up which entity holds a uniqueness record, if any."""
        constraint = next(
            c for c in self.table_schema.unique_constraints if c.name == constraint_name
        )
        key = schema.unique_key(self.entity_name, constraint, values)
        response = self._call(
            "get_item",
            TableName=self.unique_keys_table,
            Key=self._unique_record_key(key),
            ConsistentRead=True,
        )
        item = response.get("Item")
        return UUID(item[schema.OWNER_ATTRIBUTE]["S"]) if item else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save(self, entity: T) -> T:
        """
        Insert or overwrite an entity.

        A new entity gets a fresh id and ``created_at``; an existing one
        keeps its stored ``created_at``. ``updated_at`` always advances.
        The caller's object is updated in place and returned.

        Raises:
            DuplicateKeyError: If a uniqueness constraint is already held
        """
        entity = self._require_entity(entity)
        entity_id = getattr(entity, "id")
        previous = self._load(entity_id) if entity_id is not None else None
        candidate = self._stamp(entity, previous)
        self._before_save(candidate)

        plan = WritePlan()
        self._plan_put(plan, candidate, previous)
        self._execute(plan)
        logger.debug("Saved %s %s", self.entity_name, getattr(candidate, "id"))
        return self._apply(entity, candidate)

    def _before_save(self, candidate: T) -> None:
        """Hook for entity-specific defaults applied to the stamped copy."""

    def save_with_optimistic_lock(self, entity: T, expected_updated_at: datetime | None) -> T:
        """
        Overwrite an entity only if its stored ``updated_at`` still matches.

        Args:
            entity: Entity with an id, carrying the new field values
            expected_updated_at: The ``updated_at`` the caller last read

        Raises:
            InvalidArgumentError: If the id or expected timestamp is missing
            OptimisticLockError: If the record changed or no longer exists
            DuplicateKeyError: If a uniqueness constraint is already held
        """
        require_lock_arguments(entity, expected_updated_at)
        entity = self._require_entity(entity)
        entity_id = getattr(entity, "id")
        conflict = OptimisticLockError(self.entity_name, entity_id, expected_updated_at)

        previous = self._load(entity_id)
        if previous is None:
            raise conflict

        candidate = self._stamp(entity, previous)
        self._before_save(candidate)
        plan = WritePlan()
        self._plan_put(
            plan,
            candidate,
            previous,
            condition=lock_condition(expected_updated_at),  # type: ignore[arg-type]
            conflict=conflict,
        )
        self._execute(plan)
        logger.debug("Saved %s %s with optimistic lock", self.entity_name, entity_id)
        return self._apply(entity, candidate)

    def save_all(self, entities: Iterable[T]) -> list[T]:
        """
        Save entities one at a time.

        Not atomic: if a save fails, the entities before it stay saved and
        the ones after it are not attempted.
        """
        return [self.save(entity) for entity in entities]

    def save_all_atomic(self, entities: Iterable[T]) -> list[T]:
        """
        Save entities in a single transaction: all or none are written.

        Each entity plus its uniqueness records count toward the
        100-operation transaction limit.

        Raises:
            InvalidArgumentError: If the batch is too large or repeats an entity
            DuplicateKeyError: If a uniqueness constraint is held or repeated
            TransactionFailedError: If the transaction was cancelled otherwise
        """
        targets = [self._require_entity(e) for e in entities]
        if not targets:
            return []

        plan = WritePlan()
        candidates = []
        seen: set[UUID] = set()
        for entity in targets:
            entity_id = getattr(entity, "id")
            previous = self._load(entity_id) if entity_id is not None else None
            candidate = self._stamp(entity, previous)
            self._before_save(candidate)
            if getattr(candidate, "id") in seen:
                raise InvalidArgumentError("entities", f"{self.entity_name} {entity_id} repeated")
            seen.add(getattr(candidate, "id"))
            self._plan_put(plan, candidate, previous)
            candidates.append(candidate)

        self._execute(plan)
        logger.info("Saved %d %s entities atomically", len(targets), self.entity_name)
        return [self._apply(e, c) for e, c in zip(targets, candidates, strict=True)]

    def delete(self, entity: T | None) -> None:
        """Delete an entity and its uniqueness records. None or unsaved is a no-op."""
        if entity is None:
            return
        self.delete_by_id(getattr(entity, "id"))

    def delete_by_id(self, entity_id: UUID | str | None) -> None:
        """Delete by id. A missing entity is a no-op."""
        if entity_id is None:
            return
        existing = self._load(entity_id)
        if existing is None:
            logger.debug("Delete of missing %s %s ignored", self.entity_name, entity_id)
            return
        plan = WritePlan()
        self._plan_delete(plan, existing)
        self._execute(plan)
        logger.debug("Deleted %s %s", self.entity_name, entity_id)

    def delete_all(self, entities: Iterable[T]) -> None:
        """
        Delete entities one at a time.

        Not atomic: a failure leaves earlier deletions applied.
        """
        for entity in entities:
            self.delete(entity)

    def delete_all_atomic(self, entities: Iterable[T]) -> None:
        """Delete entities in a single transaction. Missing entities are skipped."""
        plan = WritePlan()
        deleted = 0
        seen: set[str] = set()
        for entity in entities:
            entity_id = getattr(entity, "id", None) if entity is not None else None
            if entity_id is None or str(entity_id) in seen:
                continue
            seen.add(str(entity_id))
            existing = self._load(entity_id)
            if existing is not None:
                self._plan_delete(plan, existing)
                deleted += 1
        if not plan.writes:
            return
        self._execute(plan)
        logger.info("Deleted %d %s entities atomically", deleted, self.entity_name)
