"""Full-result pagination over DynamoDB Scan and Query.

Both operations return at most one page (bounded by ``Limit`` and the 1 MB
response cap) plus a ``LastEvaluatedKey``. The helpers here follow the
continuation key until it is absent so callers always see the complete
result set.
"""

import logging
from collections.abc import Iterator
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import StoreUnavailableError, is_unavailable

logger = logging.getLogger(__name__)


def paginate(
    client: Any,
    operation: str,
    page_size: int | None = None,
    **request: Any,
) -> Iterator[dict[str, Any]]:
    """
    Yield every page of a ``scan`` or ``query`` request.

    Args:
        client: boto3 DynamoDB client
        operation: "scan" or "query"
        page_size: Maximum items evaluated per request (``Limit``)
        **request: Request parameters (``TableName``, ``IndexName``, ...)

    Yields:
        Raw response pages, in order

    Raises:
        StoreUnavailableError: If DynamoDB throttles or is unreachable
    """
    config: dict[str, Any] = {}
    if page_size:
        config["PageSize"] = page_size
    paginator = client.get_paginator(operation)
    pages = 0
    try:
        for page in paginator.paginate(PaginationConfig=config, **request):
            pages += 1
            yield page
    except (ClientError, BotoCoreError) as e:
        if is_unavailable(e):
            raise StoreUnavailableError(
                f"{operation} failed after {pages} pages", e, table_name=request.get("TableName")
            ) from e
        raise
    logger.debug("%s on %s read %d pages", operation, request.get("TableName"), pages)


def collect_items(
    client: Any,
    operation: str,
    page_size: int | None = None,
    **request: Any,
) -> list[dict[str, Any]]:
    """Return the items of every page, in page order."""
    items: list[dict[str, Any]] = []
    for page in paginate(client, operation, page_size, **request):
        items.extend(page.get("Items", []))
    return items


def count_items(
    client: Any,
    operation: str,
    page_size: int | None = None,
    **request: Any,
) -> int:
    """Return the total matching item count across every page."""
    return sum(page.get("Count", 0) for page in paginate(client, operation, page_size, **request))
