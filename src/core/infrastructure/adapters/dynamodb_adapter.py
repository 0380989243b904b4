"""Thin DynamoDB adapter wrapping boto3 table and transaction operations."""

import os
from decimal import Decimal
from typing import Any, Protocol, cast

import boto3
from boto3.dynamodb.types import TypeSerializer

from core.utils.constants import (
    DEFAULT_AWS_REGION,
    ENV_AWS_ENDPOINT_URL,
    ENV_AWS_REGION,
    ENV_GALLERY_ASSET_TABLE_NAME,
)


class DynamoDBTable(Protocol):
    """Minimal DynamoDB Table protocol."""

    def get_item(self, *, Key: dict[str, Any]) -> dict[str, Any]: ...
    def update_item(self, **kwargs: Any) -> dict[str, Any]: ...
    def query(self, **kwargs: Any) -> dict[str, Any]: ...
    def batch_writer(self) -> Any: ...


class DynamoDBAdapterProtocol(Protocol):
    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any]: ...
    def increment_counter(self, *, key: dict[str, Any], attribute: str) -> int: ...
    def query(self, **kwargs: Any) -> dict[str, Any]: ...
    def transact_put_items(self, *, items: list[dict[str, Any]], condition_expression: str | None = None) -> None: ...
    def transact_delete_items(self, *, keys: list[dict[str, Any]]) -> None: ...
    def transact_update_items(
        self,
        *,
        updates: list[tuple[dict[str, Any], dict[str, Any]]],
        condition_expression: str | None = None,
    ) -> None: ...
    def batch_delete_items(self, *, keys: list[dict[str, Any]]) -> None: ...


def to_dynamodb_value(value: Any) -> Any:
    """Convert Python values into types boto3 accepts (floats become Decimal)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamodb_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamodb_value(v) for v in value]
    return value


class DynamoDBAdapter:
    """Low-level DynamoDB operations (mechanical, no error handling).

    This adapter:
    - Wraps the boto3 DynamoDB resource for single-item and query calls
    - Uses the low-level client for TransactWriteItems
    - Does NOT handle errors (lets them bubble up)
    - Domain implementations catch and translate errors
    """

    def __init__(self) -> None:
        """Initialize DynamoDB table from environment."""
        table_name = os.getenv(ENV_GALLERY_ASSET_TABLE_NAME)
        if not table_name:
            raise RuntimeError(
                f"{ENV_GALLERY_ASSET_TABLE_NAME} environment variable is not set"
            )

        endpoint_url = os.getenv(ENV_AWS_ENDPOINT_URL)
        region_name = os.getenv(ENV_AWS_REGION, DEFAULT_AWS_REGION)

        dynamodb = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region_name,
        )

        self.table_name = table_name
        self.table: DynamoDBTable = cast(
            DynamoDBTable,
            dynamodb.Table(table_name),
        )
        self.client = boto3.client(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region_name,
        )
        self._serializer = TypeSerializer()

    def _serialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {
            name: self._serializer.serialize(to_dynamodb_value(value))
            for name, value in item.items()
        }

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any]:
        """Retrieve item by key.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.get_item(Key=key)

    def increment_counter(self, *, key: dict[str, Any], attribute: str) -> int:
        """Atomically add one to a numeric attribute and return the new value.

        Raises boto3 exceptions - caught by domain implementation.
        """
        response = self.table.update_item(
            Key=key,
            UpdateExpression="ADD #counter :one",
            ExpressionAttributeNames={"#counter": attribute},
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(response["Attributes"][attribute])

    def query(self, **kwargs: Any) -> dict[str, Any]:
        """Execute DynamoDB query.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.query(**kwargs)

    def transact_put_items(
        self,
        *,
        items: list[dict[str, Any]],
        condition_expression: str | None = None,
    ) -> None:
        """Insert all items in one all-or-nothing transaction.

        `condition_expression` is applied to every put.

        Raises boto3 exceptions - caught by domain implementation.
        """
        transact_items: list[dict[str, Any]] = []
        for item in items:
            put: dict[str, Any] = {
                "TableName": self.table_name,
                "Item": self._serialize(item),
            }
            if condition_expression:
                put["ConditionExpression"] = condition_expression
            transact_items.append({"Put": put})

        self.client.transact_write_items(TransactItems=transact_items)

    def transact_update_items(
        self,
        *,
        updates: list[tuple[dict[str, Any], dict[str, Any]]],
        condition_expression: str | None = None,
    ) -> None:
        """SET attributes on many items in one all-or-nothing transaction.

        Each entry is a `(key, attributes)` pair. `condition_expression` is
        applied to every update.

        Raises boto3 exceptions - caught by domain implementation.
        """
        transact_items: list[dict[str, Any]] = []
        for key, attributes in updates:
            names = {f"#f{index}": name for index, name in enumerate(attributes)}
            values = {
                f":v{index}": self._serializer.serialize(to_dynamodb_value(value))
                for index, value in enumerate(attributes.values())
            }
            update: dict[str, Any] = {
                "TableName": self.table_name,
                "Key": self._serialize(key),
                "UpdateExpression": "SET " + ", ".join(f"{name} = :v{index}" for index, name in enumerate(names)),
                "ExpressionAttributeNames": names,
                "ExpressionAttributeValues": values,
            }
            if condition_expression:
                update["ConditionExpression"] = condition_expression
            transact_items.append({"Update": update})

        self.client.transact_write_items(TransactItems=transact_items)

    def transact_delete_items(self, *, keys: list[dict[str, Any]]) -> None:
        """Delete all keys in one all-or-nothing transaction.

        Raises boto3 exceptions - caught by domain implementation.
        """
        self.client.transact_write_items(
            TransactItems=[
                {"Delete": {"TableName": self.table_name, "Key": self._serialize(key)}}
                for key in keys
            ]
        )

    def batch_delete_items(self, *, keys: list[dict[str, Any]]) -> None:
        """Delete many keys using the table batch writer (not atomic).

        Raises boto3 exceptions - caught by domain implementation.
        """
        with self.table.batch_writer() as batch:
            for key in keys:
                batch.delete_item(Key=key)
