"""Pure conversions from client payloads to printer bytes"""

import base64
import binascii
import re

from ok_print_bridge import _exceptions

MAX_BINARY_SIZE = 2 * 1024 * 1024

_HEX_RE = re.compile(r"(?:[0-9a-fA-F]{2})+")
_B64_JUNK_RE = re.compile(r"\s+")


def encode_hex(text: object) -> bytes:
    """Decodes an even-length string of hex digits"""

    if not isinstance(text, str) or not _HEX_RE.fullmatch(text):
        raise _exceptions.InvalidEncoding(f"Invalid hex: {_preview(text)}")
    return bytes.fromhex(text)


def encode_base64(text: object) -> bytes:
    """Decodes base64 (standard or URL-safe, padding optional)"""

    if text is None or text == "":
        raise _exceptions.MissingPayload("Missing base64 payload")
    if not isinstance(text, str):
        raise _exceptions.InvalidEncoding(f"Invalid base64: {_preview(text)}")

    squeezed = _B64_JUNK_RE.sub("", text).rstrip("=")
    if not squeezed:
        raise _exceptions.MissingPayload("Missing base64 payload")
    padded = squeezed + "=" * (-len(squeezed) % 4)
    altchars = b"-_" if "-" in padded or "_" in padded else None
    try:
        return base64.b64decode(padded, altchars=altchars)
    except (binascii.Error, ValueError) as ex:
        message = f"Invalid base64: {_preview(text)}"
        raise _exceptions.InvalidEncoding(message) from ex


def passthrough_binary(
    data: bytes | bytearray | memoryview | None,
    max_size: int = MAX_BINARY_SIZE,
) -> bytes:
    """Checks a raw payload for presence and size"""

    if not data:
        raise _exceptions.MissingPayload("Missing binary body")
    if len(data) > max_size:
        message = f"Binary body is {len(data)}b (max {max_size}b)"
        raise _exceptions.PayloadTooLarge(message)
    return bytes(data)


def encode_ascii_to_hex_upper(text: str) -> str:
    """Two uppercase hex digits per character; rejects code points > 0xFF"""

    if bad := [c for c in text if ord(c) > 0xFF]:
        message = f"Can't encode {bad[0]!r} (U+{ord(bad[0]):04X}) as one byte"
        raise _exceptions.InvalidEncoding(message)
    return "".join(f"{ord(c):02X}" for c in text)


def _preview(value: object, limit: int = 32) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."
