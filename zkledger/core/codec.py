"""Byte/text transforms shared by the key manager and the encryption protocol."""

import base64
import binascii


def to_bytes(text: str) -> bytes:
    """UTF-8 encode text."""
    return text.encode('utf-8')


def from_bytes(data: bytes) -> str:
    """UTF-8 decode bytes; invalid sequences raise UnicodeDecodeError."""
    return data.decode('utf-8')


def b64encode(data: bytes) -> str:
    """Standard Base64 with padding, as ASCII text."""
    return base64.b64encode(data).decode('ascii')


def b64decode(text: str) -> bytes:
    """
    Strict Base64 decode.

    Raises:
        ValueError: text contains characters outside the Base64 alphabet
            or has bad padding
    """
    if isinstance(text, str):
        try:
            text = text.encode('ascii')
        except UnicodeEncodeError as e:
            raise ValueError("Base64 input must be ASCII") from e
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid Base64 input: {e}") from e
