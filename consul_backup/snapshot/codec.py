"""
Binary-safe value encoding for snapshot lines.

Values are arbitrary bytes; snapshot lines are text split on ":" and "\\n".
Standard base64 (RFC 4648, padded) maps any byte sequence onto
[A-Za-z0-9+/=], which contains neither delimiter.
"""

from __future__ import annotations

import base64
import binascii

from ..errors import MalformedEncodingError

FIELD_DELIMITER = ":"
LINE_DELIMITER = "\n"


def encode_value(value: bytes) -> str:
    """Encode raw bytes for a snapshot line."""
    return base64.b64encode(value).decode("ascii")


def decode_value(encoded: str) -> bytes:
    """Decode a value produced by encode_value.

    Args:
        encoded: Base64 text

    Returns:
        The original bytes

    Raises:
        MalformedEncodingError: If the text is not valid padded base64
    """
    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MalformedEncodingError(f"Invalid base64 value: {e}") from e
