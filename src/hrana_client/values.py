"""Conversion between Python values and Hrana wire values."""

from __future__ import annotations

import base64
import math

from .protocol.wire import BlobValue, FloatValue, IntegerValue, NullValue, TextValue

# Python types a column value decodes to
SqlValue = None | int | float | str | bytes

MIN_INTEGER = -(2**63)
MAX_INTEGER = 2**63 - 1


def value_to_proto(value: object) -> NullValue | IntegerValue | FloatValue | TextValue | BlobValue:
    """Encode a Python value for the wire.

    Raises:
        ValueError: Integer outside signed 64-bit range, or non-finite float
        TypeError: Value of an unsupported type
    """
    if value is None:
        return NullValue()
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return IntegerValue(value="1" if value else "0")
    if isinstance(value, int):
        if not MIN_INTEGER <= value <= MAX_INTEGER:
            raise ValueError(f"Integer {value} does not fit into a signed 64-bit integer")
        return IntegerValue(value=str(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Float {value} cannot be sent to the database")
        return FloatValue(value=value)
    if isinstance(value, str):
        return TextValue(value=value)
    if isinstance(value, bytes | bytearray | memoryview):
        return BlobValue(base64=base64.b64encode(bytes(value)).decode("ascii"))
    raise TypeError(f"Unsupported value type: {type(value).__name__}")


def value_from_proto(value: NullValue | IntegerValue | FloatValue | TextValue | BlobValue) -> SqlValue:
    """Decode a wire value into a Python value."""
    if isinstance(value, NullValue):
        return None
    if isinstance(value, IntegerValue):
        return int(value.value)
    if isinstance(value, FloatValue):
        return value.value
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, BlobValue):
        # servers may omit base64 padding
        data = value.base64
        return base64.b64decode(data + "=" * (-len(data) % 4))
    raise TypeError(f"Unexpected wire value: {value!r}")
