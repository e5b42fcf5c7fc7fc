from __future__ import annotations

import concurrent.futures
from concurrent.futures import Executor
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from .deadline import Deadline
from .errors import DdbError, ErrorKind, StoreError

T = TypeVar("T")

# How often a waiting caller re-checks its deadline / cancel event.
_POLL_INTERVAL_S = 0.05

_THROTTLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}

_UNAVAILABLE_CODES = {
    "InternalServerError",
    "ServiceUnavailable",
}

_ACCESS_DENIED_CODES = {
    "AccessDeniedException",
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "ExpiredTokenException",
}


def _aws_request_id_from_client_error(e: ClientError) -> str | None:
    try:
        return (e.response or {}).get("ResponseMetadata", {}).get("RequestId")
    except Exception:
        return None


def _err_code_from_client_error(e: ClientError) -> str | None:
    try:
        return (e.response or {}).get("Error", {}).get("Code")
    except Exception:
        return None


def _map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    def _store_error(message: str, kind: ErrorKind, *, retryable: bool = False, request_id: str | None = None):
        return StoreError(
            message=message,
            kind=kind,
            operation=operation,
            table_name=table_name,
            key=key,
            aws_request_id=request_id,
            retryable=retryable,
            cause=exc,
        )

    if isinstance(exc, ClientError):
        code = _err_code_from_client_error(exc) or ""
        rid = _aws_request_id_from_client_error(exc)

        if code == "ConditionalCheckFailedException":
            return _store_error(
                "DynamoDB conditional check failed", ErrorKind.CONDITIONAL_CHECK_FAILED, request_id=rid
            )
        if code == "ValidationException":
            return _store_error("DynamoDB request validation failed", ErrorKind.VALIDATION, request_id=rid)
        if code in _ACCESS_DENIED_CODES:
            return _store_error("DynamoDB access denied", ErrorKind.ACCESS_DENIED, request_id=rid)
        if code in _THROTTLE_CODES:
            return _store_error(
                "DynamoDB request throttled", ErrorKind.THROTTLED, retryable=True, request_id=rid
            )
        if code in _UNAVAILABLE_CODES:
            return _store_error(
                "DynamoDB service unavailable", ErrorKind.UNAVAILABLE, retryable=True, request_id=rid
            )
        return _store_error(
            f"DynamoDB request failed ({code or 'ClientError'})", ErrorKind.INTERNAL, request_id=rid
        )

    if isinstance(exc, ParamValidationError):
        return _store_error("DynamoDB request validation failed", ErrorKind.VALIDATION)

    if isinstance(exc, BotoCoreError):
        return _store_error("DynamoDB client error", ErrorKind.UNAVAILABLE, retryable=True)

    return _store_error("Unexpected DynamoDB error", ErrorKind.INTERNAL)


def cancelled_error(
    deadline: Deadline,
    *,
    operation: str,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
) -> StoreError:
    return StoreError(
        message=f"DynamoDB request {deadline.reason()}",
        kind=ErrorKind.CANCELLED,
        operation=operation,
        table_name=table_name,
        key=key,
    )


def _wait(
    future: concurrent.futures.Future,
    deadline: Deadline,
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
):
    while True:
        if deadline.done:
            # The request may already be on the wire; we stop waiting for it.
            future.cancel()
            raise cancelled_error(deadline, operation=operation, table_name=table_name, key=key)
        rem = deadline.remaining()
        timeout = _POLL_INTERVAL_S if rem is None else min(_POLL_INTERVAL_S, rem)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            continue


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    deadline: Deadline | None = None,
    executor: Executor | None = None,
) -> T:
    """
    Run one DynamoDB round trip and translate failures into StoreError.

    There is no app-layer retry: botocore's own retry mode is the only one.
    With a deadline the call runs on `executor` so the caller can stop
    waiting as soon as the deadline passes or is cancelled.
    """
    if deadline is not None and deadline.done:
        raise cancelled_error(deadline, operation=operation, table_name=table_name, key=key)

    try:
        if deadline is None or executor is None:
            return fn()
        return _wait(
            executor.submit(fn),
            deadline,
            operation=operation,
            table_name=table_name,
            key=key,
        )
    except DdbError:
        raise
    except Exception as e:  # noqa: BLE001
        raise _map_botocore_error(operation=operation, table_name=table_name, key=key, exc=e) from e
