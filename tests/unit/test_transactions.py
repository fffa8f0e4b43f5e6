"""Tests for TransactionManager."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from idp_store.exceptions import (
    InvalidArgumentError,
    StoreUnavailableError,
    TransactionFailedError,
)
from idp_store.transactions import MAX_TRANSACTION_ITEMS, TransactionManager, TransactionWrite


@pytest.fixture
def table(dynamodb_client):
    """A simple table keyed by id."""
    dynamodb_client.create_table(
        TableName="txn_items",
        BillingMode="PAY_PER_REQUEST",
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
    )
    return "txn_items"


@pytest.fixture
def manager(dynamodb_client):
    return TransactionManager(dynamodb_client)


def _item(item_id: str, value: str = "v") -> dict:
    return {"id": {"S": item_id}, "value": {"S": value}}


def _ids(client, table) -> set[str]:
    return {item["id"]["S"] for item in client.scan(TableName=table)["Items"]}


def _cancelled(codes: list[str]) -> ClientError:
    return ClientError(
        {
            "Error": {
                "Code": "TransactionCanceledException",
                "Message": f"Transaction cancelled, please refer cancellation reasons "
                f"for specific reasons [{', '.join(codes)}]",
            },
        },
        "TransactWriteItems",
    )


class TestTransactionWrite:
    """Tests for TransactionWrite request rendering."""

    def test_put(self):
        write = TransactionWrite.put("t", _item("1"), "put 1")
        assert write.to_request() == {"Put": {"TableName": "t", "Item": _item("1")}}
        assert not write.has_condition

    def test_conditional_delete(self):
        write = TransactionWrite.delete_with_condition(
            "t",
            {"id": {"S": "1"}},
            "#v = :v",
            {"#v": "value"},
            {":v": {"S": "x"}},
        )
        assert write.to_request() == {
            "Delete": {
                "TableName": "t",
                "Key": {"id": {"S": "1"}},
                "ConditionExpression": "#v = :v",
                "ExpressionAttributeNames": {"#v": "value"},
                "ExpressionAttributeValues": {":v": {"S": "x"}},
            }
        }
        assert write.description == "conditional delete t"

    def test_update(self):
        write = TransactionWrite.update(
            "t",
            {"id": {"S": "1"}},
            "SET #v = :new",
            "#v = :old",
            {"#v": "value"},
            {":new": {"S": "y"}, ":old": {"S": "x"}},
        )
        assert write.to_request() == {
            "Update": {
                "TableName": "t",
                "Key": {"id": {"S": "1"}},
                "UpdateExpression": "SET #v = :new",
                "ConditionExpression": "#v = :old",
                "ExpressionAttributeNames": {"#v": "value"},
                "ExpressionAttributeValues": {":new": {"S": "y"}, ":old": {"S": "x"}},
            }
        }
        assert write.has_condition
        assert write.description == "update t"


class TestExecuteTransaction:
    """Tests for TransactionManager.execute_transaction."""

    def test_empty_is_a_noop(self):
        client = MagicMock()
        TransactionManager(client).execute_transaction([])
        client.transact_write_items.assert_not_called()

    def test_too_many_writes_are_rejected_before_sending(self):
        client = MagicMock()
        count = MAX_TRANSACTION_ITEMS + 1
        writes = [TransactionWrite.put("t", _item(str(n))) for n in range(count)]

        with pytest.raises(InvalidArgumentError, match="101 operations"):
            TransactionManager(client).execute_transaction(writes)
        client.transact_write_items.assert_not_called()

    def test_commits_all_writes(self, manager, dynamodb_client, table):
        dynamodb_client.put_item(TableName=table, Item=_item("old"))

        manager.execute_transaction(
            [
                TransactionWrite.put(table, _item("a")),
                TransactionWrite.put(table, _item("b")),
                TransactionWrite.delete(table, {"id": {"S": "old"}}),
            ]
        )

        assert _ids(dynamodb_client, table) == {"a", "b"}

    def test_commits_update_with_put(self, manager, dynamodb_client, table):
        dynamodb_client.put_item(TableName=table, Item=_item("counter", "0"))

        manager.execute_transaction(
            [
                TransactionWrite.update(
                    table,
                    {"id": {"S": "counter"}},
                    "SET #v = :v",
                    "attribute_exists(id)",
                    {"#v": "value"},
                    {":v": {"S": "1"}},
                ),
                TransactionWrite.put(table, _item("a")),
            ]
        )

        stored = dynamodb_client.get_item(TableName=table, Key={"id": {"S": "counter"}})
        assert stored["Item"]["value"] == {"S": "1"}
        assert _ids(dynamodb_client, table) == {"counter", "a"}

    def test_failed_update_condition_applies_nothing(self, manager, dynamodb_client, table):
        dynamodb_client.put_item(TableName=table, Item=_item("counter", "0"))
        writes = [
            TransactionWrite.put(table, _item("a")),
            TransactionWrite.update(
                table,
                {"id": {"S": "counter"}},
                "SET #v = :v",
                "#v = :expected",
                {"#v": "value"},
                {":v": {"S": "2"}, ":expected": {"S": "1"}},
            ),
        ]

        with pytest.raises(TransactionFailedError) as exc_info:
            manager.execute_transaction(writes)

        assert [f.index for f in exc_info.value.failures] == [1]
        assert _ids(dynamodb_client, table) == {"counter"}
        stored = dynamodb_client.get_item(TableName=table, Key={"id": {"S": "counter"}})
        assert stored["Item"]["value"] == {"S": "0"}

    def test_failed_condition_applies_nothing(self, manager, dynamodb_client, table):
        dynamodb_client.put_item(TableName=table, Item=_item("existing"))
        writes = [
            TransactionWrite.put(table, _item("a")),
            TransactionWrite.put(table, _item("b")),
            TransactionWrite.put_with_condition(
                table,
                _item("existing", "new"),
                "attribute_not_exists(id)",
                description="create existing",
            ),
        ]

        with pytest.raises(TransactionFailedError) as exc_info:
            manager.execute_transaction(writes)

        assert _ids(dynamodb_client, table) == {"existing"}
        stored = dynamodb_client.get_item(TableName=table, Key={"id": {"S": "existing"}})
        assert stored["Item"]["value"] == {"S": "v"}

        error = exc_info.value
        assert error.has_condition_failure()
        assert [f.index for f in error.failures] == [2]
        assert error.failures[0].description == "create existing"
        assert error.failed_writes() == [writes[2]]

    def test_reasons_parsed_from_message(self):
        client = MagicMock()
        client.transact_write_items.side_effect = _cancelled(["None", "ConditionalCheckFailed"])
        writes = [TransactionWrite.put("t", _item("1")), TransactionWrite.put("t", _item("2"))]

        with pytest.raises(TransactionFailedError) as exc_info:
            TransactionManager(client).execute_transaction(writes)

        assert [(f.index, f.code) for f in exc_info.value.failures] == [
            (1, "ConditionalCheckFailed")
        ]

    def test_throttled_cancellation_is_store_unavailable(self):
        client = MagicMock()
        client.transact_write_items.side_effect = _cancelled(["ThrottlingError", "None"])
        writes = [TransactionWrite.put("t", _item("1")), TransactionWrite.put("t", _item("2"))]

        with pytest.raises(StoreUnavailableError):
            TransactionManager(client).execute_transaction(writes)

    def test_throttling_is_store_unavailable(self):
        client = MagicMock()
        client.transact_write_items.side_effect = ClientError(
            {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}},
            "TransactWriteItems",
        )

        with pytest.raises(StoreUnavailableError):
            TransactionManager(client).execute_transaction([TransactionWrite.put("t", _item("1"))])

    def test_other_errors_propagate_unchanged(self):
        client = MagicMock()
        error = ClientError(
            {"Error": {"Code": "ValidationException", "Message": "bad"}}, "TransactWriteItems"
        )
        client.transact_write_items.side_effect = error

        with pytest.raises(ClientError) as exc_info:
            TransactionManager(client).execute_transaction([TransactionWrite.put("t", _item("1"))])
        assert exc_info.value is error
