"""Attribute lookups that use a secondary index when one is declared."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Generic, TypeVar

from .mapper import AttributeMapper, format_timestamp
from .pagination import collect_items
from .schema import TableSchema, key_string

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_blank(value: Any) -> bool:
    """True for lookup values that can never match (None or empty string)."""
    return value is None or (isinstance(value, str) and value == "")


class IndexQueryStrategy(Generic[T]):
    """
    Finds entities of one table by attribute value.

    A declared index is queried directly (fully paginated). An attribute
    with no index falls back to a full scan filtered in memory, which is
    O(table size) and logged at debug level.
    """

    def __init__(
        self,
        client: Any,
        table_name: str,
        table_schema: TableSchema,
        mapper: AttributeMapper,
        page_size: int | None = None,
    ) -> None:
        self._client = client
        self.table_name = table_name
        self.table_schema = table_schema
        self._mapper = mapper
        self.page_size = page_size

    def _decode(self, items: list[dict[str, Any]]) -> list[T]:
        entity_type = self.table_schema.entity_type
        return [self._mapper.to_entity(entity_type, item) for item in items]

    def query_index(
        self,
        field: str,
        value: Any,
        range_between: tuple[datetime, datetime] | None = None,
    ) -> list[T]:
        """Query the index declared for ``field``; the index must exist."""
        index = self.table_schema.index_for(field)
        if index is None:
            raise KeyError(f"{self.table_schema.entity_name} has no index on {field}")

        key_condition = "#k = :k"
        names = {"#k": index.key_attribute}
        values: dict[str, Any] = {":k": {"S": key_string(value)}}
        if range_between is not None:
            start, end = range_between
            key_condition += " AND #r BETWEEN :start AND :end"
            names["#r"] = index.range_attribute
            values[":start"] = {"S": format_timestamp(start)}
            values[":end"] = {"S": format_timestamp(end)}

        items = collect_items(
            self._client,
            "query",
            self.page_size,
            TableName=self.table_name,
            IndexName=index.name,
            KeyConditionExpression=key_condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
        )
        return self._decode(items)

    def scan(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        """Return every entity of the table, optionally filtered in memory."""
        entities = self._decode(
            collect_items(self._client, "scan", self.page_size, TableName=self.table_name)
        )
        if predicate is None:
            return entities
        return [e for e in entities if predicate(e)]

    def find_by_attribute(
        self,
        field: str,
        value: Any,
        range_between: tuple[datetime, datetime] | None = None,
    ) -> list[T]:
        """
        Find entities whose ``field`` equals ``value``.

        Args:
            field: Entity field name (snake_case)
            value: Value to match; None or "" returns [] without a store call
            range_between: Optional inclusive bounds on the index range key

        Returns:
            All matching entities
        """
        if is_blank(value):
            return []

        if self.table_schema.index_for(field) is not None:
            return self.query_index(field, value, range_between)

        logger.debug(
            "No index on %s.%s, scanning %s", self.table_schema.entity_name, field, self.table_name
        )
        return self.scan(lambda e: getattr(e, field) == value)

    def find_by_attributes(self, **predicates: Any) -> list[T]:
        """
        Find entities matching every ``field=value`` predicate.

        The first predicate field with a declared index (in declaration
        order) drives the query; the remaining predicates are applied in
        memory. Without any indexed field this is a filtered scan.
        """
        if not predicates or any(is_blank(v) for v in predicates.values()):
            return []

        driver = next(
            (index.field for index in self.table_schema.indexes if index.field in predicates),
            None,
        )
        if driver is None:
            logger.debug(
                "No index on %s(%s), scanning %s",
                self.table_schema.entity_name,
                ", ".join(predicates),
                self.table_name,
            )
            candidates = self.scan()
        else:
            candidates = self.query_index(driver, predicates[driver])

        return [
            e
            for e in candidates
            if all(getattr(e, name) == value for name, value in predicates.items())
        ]
