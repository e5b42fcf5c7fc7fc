from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator

from boto3.dynamodb.conditions import ConditionBase

from ...observability.logging import get_logger
from ...settings import Settings, get_settings
from .calls import cancelled_error, ddb_call
from .client import dynamodb_client
from .codec import deserialize_item, serialize_item
from .deadline import Deadline
from .errors import ConfigurationError, ErrorKind, StoreError
from .expressions import UpdateRequest, build_condition
from .pagination import decode_next_token, encode_next_token


log = get_logger("entity_store.dynamodb")


class WriteStatus(str, Enum):
    APPLIED = "applied"
    CONDITION_FAILED = "condition_failed"


@dataclass(slots=True)
class WriteOutcome:
    """Result of a put/delete/update; a failed condition is a status, not an error."""

    status: WriteStatus
    attributes: dict[str, Any] | None = None

    @property
    def applied(self) -> bool:
        return self.status is WriteStatus.APPLIED


@dataclass(slots=True)
class ScanPage:
    items: list[dict[str, Any]]
    # Raw AttributeValue-shaped LastEvaluatedKey; None on the last page.
    last_evaluated_key: dict[str, Any] | None


@dataclass(slots=True)
class Page:
    items: list[dict[str, Any]]
    next_token: str | None


class ScanPages:
    """
    Lazy, restartable sequence of full-table scan pages.

    Nothing is requested until iteration starts, and every new iteration
    starts a fresh scan from `start_key`. The deadline is checked before each
    page so a cancelled caller never triggers another request.
    """

    def __init__(
        self,
        table: "DynamoTable",
        *,
        page_size: int | None = None,
        start_key: dict[str, Any] | None = None,
        deadline: Deadline | None = None,
    ):
        self._table = table
        self._page_size = page_size
        self._start_key = start_key
        self._deadline = deadline

    def __iter__(self) -> Iterator[ScanPage]:
        lek = self._start_key
        while True:
            if self._deadline is not None and self._deadline.done:
                raise cancelled_error(self._deadline, operation="Scan", table_name=self._table.table_name)
            page = self._table.scan_page(
                limit=self._page_size,
                exclusive_start_key=lek,
                deadline=self._deadline,
            )
            yield page
            lek = page.last_evaluated_key
            if not lek:
                return

    def items(self) -> Iterator[dict[str, Any]]:
        for page in self:
            yield from page.items


class DynamoTable:
    """
    Handle to one DynamoDB table over the low-level boto3 client.

    Holds no per-call state, so one instance can be shared across threads.
    Items go in and come out as plain Python dicts; marshaling to the
    AttributeValue shape happens here.
    """

    def __init__(
        self,
        *,
        table_name: str,
        client: Any,
        scan_page_size: int | None = None,
        token_secret: str | None = None,
        max_inflight: int = 8,
    ):
        self.table_name = str(table_name)
        self.scan_page_size = int(scan_page_size) if scan_page_size else None
        self._client = client
        self._token_secret = token_secret
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_inflight or 1)),
            thread_name_prefix="ddb",
        )

    def close(self) -> None:
        # Don't block on requests a cancelled caller already walked away from.
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "DynamoTable":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _call(
        self,
        operation: str,
        fn: Callable[[], Any],
        *,
        key: dict[str, Any] | None = None,
        deadline: Deadline | None = None,
    ) -> Any:
        log.debug("ddb_request", operation=operation, table=self.table_name, key=key)
        return ddb_call(
            operation,
            fn,
            table_name=self.table_name,
            key=key,
            deadline=deadline,
            executor=self._executor,
        )

    def _write(
        self,
        operation: str,
        fn: Callable[[], Any],
        *,
        key: dict[str, Any] | None,
        deadline: Deadline | None,
    ) -> WriteOutcome:
        try:
            resp = self._call(operation, fn, key=key, deadline=deadline)
        except StoreError as e:
            if e.kind is ErrorKind.CONDITIONAL_CHECK_FAILED:
                log.info("ddb_condition_failed", operation=operation, table=self.table_name, key=key)
                return WriteOutcome(status=WriteStatus.CONDITION_FAILED)
            raise
        return WriteOutcome(
            status=WriteStatus.APPLIED,
            attributes=deserialize_item((resp or {}).get("Attributes")),
        )

    # --- basic operations ---

    def get_item(
        self,
        *,
        key: dict[str, Any],
        consistent_read: bool = False,
        deadline: Deadline | None = None,
    ) -> dict[str, Any] | None:
        wire_key = serialize_item(key)

        def _op():
            return self._client.get_item(
                TableName=self.table_name,
                Key=wire_key,
                ConsistentRead=bool(consistent_read),
            )

        resp = self._call("GetItem", _op, key=key, deadline=deadline)
        return deserialize_item((resp or {}).get("Item"))

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition: ConditionBase | None = None,
        return_values: str = "NONE",
        deadline: Deadline | None = None,
    ) -> WriteOutcome:
        wire_item = serialize_item(item)
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "Item": wire_item,
            "ReturnValues": return_values,
        }
        if condition is not None:
            cond = build_condition(condition)
            kwargs["ConditionExpression"] = cond.condition_expression
            if cond.expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = cond.expression_attribute_names
            if cond.expression_attribute_values:
                kwargs["ExpressionAttributeValues"] = serialize_item(cond.expression_attribute_values)

        return self._write("PutItem", lambda: self._client.put_item(**kwargs), key=None, deadline=deadline)

    def delete_item(
        self,
        *,
        key: dict[str, Any],
        condition: ConditionBase | None = None,
        return_values: str = "ALL_OLD",
        deadline: Deadline | None = None,
    ) -> WriteOutcome:
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": serialize_item(key),
            "ReturnValues": return_values,
        }
        if condition is not None:
            cond = build_condition(condition)
            kwargs["ConditionExpression"] = cond.condition_expression
            if cond.expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = cond.expression_attribute_names
            if cond.expression_attribute_values:
                kwargs["ExpressionAttributeValues"] = serialize_item(cond.expression_attribute_values)

        return self._write("DeleteItem", lambda: self._client.delete_item(**kwargs), key=key, deadline=deadline)

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update: UpdateRequest,
        return_values: str = "ALL_NEW",
        deadline: Deadline | None = None,
    ) -> WriteOutcome:
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": serialize_item(key),
            "UpdateExpression": update.update_expression,
            "ReturnValues": return_values,
        }
        if update.expression_attribute_names:
            kwargs["ExpressionAttributeNames"] = update.expression_attribute_names
        if update.expression_attribute_values:
            kwargs["ExpressionAttributeValues"] = serialize_item(update.expression_attribute_values)
        if update.condition_expression:
            kwargs["ConditionExpression"] = update.condition_expression

        return self._write("UpdateItem", lambda: self._client.update_item(**kwargs), key=key, deadline=deadline)

    # --- scan/pagination ---

    def scan_page(
        self,
        *,
        limit: int | None = None,
        exclusive_start_key: dict[str, Any] | None = None,
        deadline: Deadline | None = None,
    ) -> ScanPage:
        kwargs: dict[str, Any] = {"TableName": self.table_name}
        if limit:
            kwargs["Limit"] = int(limit)
        # Important: only pass ExclusiveStartKey when present.
        if isinstance(exclusive_start_key, dict) and exclusive_start_key:
            kwargs["ExclusiveStartKey"] = exclusive_start_key

        resp = self._call("Scan", lambda: self._client.scan(**kwargs), deadline=deadline) or {}
        items = [deserialize_item(it) or {} for it in (resp.get("Items") or [])]
        return ScanPage(items=items, last_evaluated_key=resp.get("LastEvaluatedKey") or None)

    def scan(self, *, page_size: int | None = None, deadline: Deadline | None = None) -> ScanPages:
        return ScanPages(self, page_size=page_size or self.scan_page_size, deadline=deadline)

    def scan_token_page(
        self,
        *,
        limit: int = 50,
        next_token: str | None = None,
        deadline: Deadline | None = None,
    ) -> Page:
        lim = max(1, min(500, int(limit or 50)))
        lek = None
        if next_token:
            lek = decode_next_token(next_token, table_name=self.table_name, secret=self._token_secret)
        page = self.scan_page(limit=lim, exclusive_start_key=lek, deadline=deadline)
        return Page(
            items=page.items,
            next_token=encode_next_token(
                page.last_evaluated_key,
                table_name=self.table_name,
                secret=self._token_secret,
            ),
        )


def open_table(settings: Settings | None = None, *, client: Any = None) -> DynamoTable:
    """
    Construct the table handle for the configured entities table.

    The caller owns the returned handle; pass `client` to reuse an existing
    boto3 DynamoDB client instead of building one from the environment.
    """
    s = settings or get_settings()
    table_name = str(s.ddb_table_name or "").strip()
    if not table_name:
        raise ConfigurationError(message="DDB_TABLE_NAME is not set", operation="Config")

    table = DynamoTable(
        table_name=table_name,
        client=client if client is not None else dynamodb_client(s),
        scan_page_size=s.ddb_scan_page_size,
        token_secret=s.next_token_enc_key,
        max_inflight=s.ddb_max_inflight,
    )
    log.info("ddb_table_opened", table=table_name, settings=s.to_log_safe_dict())
    return table
