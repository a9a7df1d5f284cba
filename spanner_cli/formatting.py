"""Rendering of typed Spanner values as display strings.

The client library decodes column values into Python objects; the CLI shows
them in the canonical text form Spanner itself uses (``true``/``false`` for
BOOL, plain digits for INT64, RFC3339 for TIMESTAMP, ...).
"""

import base64
import datetime
import json
import math
import struct
from decimal import Decimal
from typing import Any, List, Optional

from google.cloud.spanner_v1 import Type, TypeCode

NULL_STRING = "NULL"


def format_value(value: Any, field_type: Optional[Type] = None) -> str:
    """Render one column value.

    Args:
        value: Value as decoded by the client library.
        field_type: Spanner type of the column. When omitted the Python type
            of ``value`` decides the rendering.

    Returns:
        Display string for the value.
    """
    if value is None:
        return NULL_STRING

    code = field_type.code if field_type is not None else None

    if code == TypeCode.ARRAY:
        element_type = field_type.array_element_type
        return _format_list([format_value(v, element_type) for v in value])
    if code == TypeCode.STRUCT:
        fields = list(field_type.struct_type.fields)
        if len(fields) == len(value):
            return _format_list([format_value(v, f.type_) for v, f in zip(value, fields)])
        return _format_list([format_value(v) for v in value])
    if code == TypeCode.FLOAT32 and isinstance(value, float):
        return format_float(value, single_precision=True)
    if code in (TypeCode.BYTES, TypeCode.PROTO):
        # The client hands BYTES back still base64-encoded.
        if isinstance(value, bytes):
            return value.decode("ascii", errors="replace")
        return str(value)

    return _format_scalar(value)


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, Decimal):
        return format_numeric(value)
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, datetime.datetime):
        return format_timestamp(value)
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return _format_list([format_value(v) for v in value])
    if hasattr(value, "serialize"):
        # JsonObject
        serialized = value.serialize()
        return NULL_STRING if serialized is None else serialized
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def _format_list(items: List[str]) -> str:
    return "[" + ", ".join(items) + "]"


def _to_float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def format_float(value: float, single_precision: bool = False) -> str:
    """Shortest text that reads back as the same FLOAT64 (or FLOAT32) value."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if single_precision:
        value = _to_float32(value)
        for digits in range(1, 10):
            candidate = float(f"{value:.{digits}g}")
            if _to_float32(candidate) == value:
                return repr(candidate)
    return repr(value)


def format_numeric(value: Decimal) -> str:
    # Exact digits; NUMERIC carries up to 38 of them.
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def format_timestamp(value: datetime.datetime) -> str:
    """Format a timestamp as RFC3339 in UTC with trailing zero digits trimmed."""
    nanos = getattr(value, "nanosecond", None) or value.microsecond * 1000
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if nanos:
        text += "." + str(nanos).rjust(9, "0").rstrip("0")
    return text + "Z"


def format_type(field_type: Type) -> str:
    """Render a Spanner type as it appears in DDL, e.g. ``ARRAY<INT64>``."""
    code = field_type.code
    if code == TypeCode.ARRAY:
        return f"ARRAY<{format_type(field_type.array_element_type)}>"
    if code == TypeCode.STRUCT:
        parts = []
        for f in field_type.struct_type.fields:
            inner = format_type(f.type_)
            parts.append(f"{f.name} {inner}" if f.name else inner)
        return f"STRUCT<{', '.join(parts)}>"
    if code in (TypeCode.PROTO, TypeCode.ENUM) and getattr(field_type, "proto_type_fqn", ""):
        return field_type.proto_type_fqn
    return TypeCode(code).name
