"""Tagged value encoding for lossless JSON round-trips of row data.

Every value is wrapped as ``{"kind": ..., "value": ...}``:

- ``bytes``/``bytearray``/``memoryview`` -> ``kind="bytes"``, base64 text
- ``datetime``/``date`` -> ``kind="timestamp"``, ISO-8601 text
- ``time`` -> ``kind="time"``, ISO-8601 text
- ``timedelta`` -> ``kind="interval"``, ``{"days", "seconds", "microseconds"}``
- ``Decimal`` -> ``kind="decimal"``, exact decimal text
- ``UUID`` -> ``kind="uuid"``, canonical text
- lists/tuples (array columns) -> ``kind="array"``, list of tagged items
- mappings (JSON columns) -> ``kind="mapping"``, tagged value per key
- ``None``/``bool``/``int``/``float``/``str`` -> ``kind="plain"``, stored as-is

Anything else raises ``TypeError`` at encode time.
"""

import base64
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping
from uuid import UUID

KIND_BYTES = "bytes"
KIND_TIMESTAMP = "timestamp"
KIND_TIME = "time"
KIND_INTERVAL = "interval"
KIND_DECIMAL = "decimal"
KIND_UUID = "uuid"
KIND_ARRAY = "array"
KIND_MAPPING = "mapping"
KIND_PLAIN = "plain"

PLAIN_TYPES = (type(None), bool, int, float, str)


def encode_value(value: Any) -> Dict[str, Any]:
    """Tag ``value`` for JSON storage.

    Raises:
        TypeError: If the value has no lossless representation
    """
    if isinstance(value, PLAIN_TYPES):
        return {"kind": KIND_PLAIN, "value": value}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"kind": KIND_BYTES, "value": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (datetime, date)):
        return {"kind": KIND_TIMESTAMP, "value": value.isoformat()}
    if isinstance(value, time):
        return {"kind": KIND_TIME, "value": value.isoformat()}
    if isinstance(value, timedelta):
        return {
            "kind": KIND_INTERVAL,
            "value": {"days": value.days, "seconds": value.seconds, "microseconds": value.microseconds},
        }
    if isinstance(value, Decimal):
        return {"kind": KIND_DECIMAL, "value": str(value)}
    if isinstance(value, UUID):
        return {"kind": KIND_UUID, "value": str(value)}
    if isinstance(value, (list, tuple)):
        return {"kind": KIND_ARRAY, "value": [encode_value(item) for item in value]}
    if isinstance(value, Mapping):
        return {"kind": KIND_MAPPING, "value": {str(k): encode_value(v) for k, v in value.items()}}
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def decode_value(tagged: Mapping[str, Any]) -> Any:
    """Inverse of :func:`encode_value`.

    Raises:
        ValueError: If the value is not a tagged variant or the kind is unknown
    """
    if not isinstance(tagged, Mapping) or "kind" not in tagged:
        raise ValueError(f"Not a tagged value: {tagged!r}")

    kind = tagged["kind"]
    value = tagged.get("value")

    if kind == KIND_PLAIN:
        return value
    if kind == KIND_BYTES:
        return base64.b64decode(value)
    if kind == KIND_TIMESTAMP:
        # Date-only ISO strings are exactly YYYY-MM-DD
        if len(value) == 10:
            return date.fromisoformat(value)
        return datetime.fromisoformat(value)
    if kind == KIND_TIME:
        return time.fromisoformat(value)
    if kind == KIND_INTERVAL:
        return timedelta(days=value["days"], seconds=value["seconds"], microseconds=value["microseconds"])
    if kind == KIND_DECIMAL:
        return Decimal(value)
    if kind == KIND_UUID:
        return UUID(value)
    if kind == KIND_ARRAY:
        return [decode_value(item) for item in value]
    if kind == KIND_MAPPING:
        return {key: decode_value(item) for key, item in value.items()}
    raise ValueError(f"Unknown value kind: {kind!r}")


def encode_row(row: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {column: encode_value(value) for column, value in row.items()}


def decode_row(row: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    return {column: decode_value(value) for column, value in row.items()}
