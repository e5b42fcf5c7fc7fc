from __future__ import annotations

from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import CodecError


_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_value(value: Any, *, name: str | None = None) -> dict[str, Any]:
    # DynamoDB client expects AttributeValue shape; TypeSerializer produces {'S': '...'} etc.
    try:
        return _serializer.serialize(value)
    except (TypeError, ValueError) as e:
        label = f" for {name!r}" if name else ""
        raise CodecError(
            message=f"Unsupported DynamoDB attribute value{label}: {type(value).__name__}",
            operation="Marshal",
            cause=e,
        ) from e


def serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    return {str(k): serialize_value(v, name=str(k)) for k, v in item.items()}


def deserialize_item(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if item is None:
        return None
    out: dict[str, Any] = {}
    for k, v in item.items():
        try:
            out[k] = _deserializer.deserialize(v)
        except (TypeError, ValueError, KeyError) as e:
            raise CodecError(
                message=f"Malformed DynamoDB attribute value for {k!r}",
                operation="Unmarshal",
                cause=e,
            ) from e
    return out
