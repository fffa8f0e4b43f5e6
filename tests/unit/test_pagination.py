"""Tests for multi-page Scan/Query reads."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from idp_store.exceptions import StoreUnavailableError
from idp_store.models import Stack, StackType, Team
from idp_store.pagination import collect_items, count_items, paginate
from idp_store.repositories import StackRepository, TeamRepository


@pytest.fixture
def teams(small_page_store):
    """150 teams in a store that reads 25 items per page."""
    repo = TeamRepository(small_page_store)
    for n in range(150):
        repo.save(Team(name=f"team-{n:03d}"))
    return repo


class TestPaginate:
    """Tests for paginate and its accumulators."""

    def test_collects_every_page(self, teams):
        pages = list(paginate(teams._client, "scan", 25, TableName=teams.table_name))
        assert len(pages) >= 6
        assert all(len(page["Items"]) <= 25 for page in pages)

        items = collect_items(teams._client, "scan", 25, TableName=teams.table_name)
        assert len(items) == 150
        assert len({item["id"]["S"] for item in items}) == 150

    def test_count_sums_pages(self, teams):
        assert count_items(teams._client, "scan", 25, TableName=teams.table_name) == 150

    def test_throttling_becomes_store_unavailable(self):
        paginator = MagicMock()
        paginator.paginate.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "Scan",
        )
        client = MagicMock()
        client.get_paginator.return_value = paginator

        with pytest.raises(StoreUnavailableError) as exc_info:
            collect_items(client, "scan", TableName="idp_teams")
        assert exc_info.value.table_name == "idp_teams"

    def test_other_errors_propagate(self):
        paginator = MagicMock()
        paginator.paginate.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}}, "Scan"
        )
        client = MagicMock()
        client.get_paginator.return_value = paginator

        with pytest.raises(ClientError):
            collect_items(client, "scan", TableName="idp_teams")


@pytest.mark.slow
class TestRepositoryPagination:
    """Repository reads never return a partial page."""

    def test_find_all_and_count(self, teams):
        found = teams.find_all()
        assert len(found) == 150
        assert {t.name for t in found} == {f"team-{n:03d}" for n in range(150)}
        assert teams.count() == 150

    def test_index_query_spans_pages(self, small_page_store):
        repo = StackRepository(small_page_store)
        for n in range(60):
            repo.save(Stack(f"s{n}", "owner@example.com", StackType.INFRASTRUCTURE))
        repo.save(Stack("other", "else@example.com", StackType.INFRASTRUCTURE))

        found = repo.find_by_created_by("owner@example.com")
        assert len(found) == 60
