"""Hand-built ``multipart/form-data`` bodies for file uploads.

The upload endpoint accepts exactly one file field and an optional
``category`` text field. The body is assembled byte by byte rather than
through :mod:`httpx`'s ``files=`` support so the part order, headers and
``Content-Length`` are fully under our control::

    --<boundary>\\r\\n
    Content-Disposition: form-data; name="file"; filename="<name>"\\r\\n
    Content-Type: <mime>\\r\\n
    \\r\\n
    <file bytes>\\r\\n
    --<boundary>\\r\\n                       (only with a category)
    Content-Disposition: form-data; name="category"\\r\\n
    \\r\\n
    <category>\\r\\n
    --<boundary>--\\r\\n
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Optional, Union

from bamboohr_shim.exceptions import InvalidUsageError

BOUNDARY_PREFIX = "----BambooHRFormBoundary"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "txt": "text/plain",
}

Payload = Union[bytes, bytearray, str]


@dataclass(frozen=True)
class MultipartBody:
    """An encoded form body and the headers that must accompany it."""

    boundary: str
    content: bytes

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(len(self.content)),
        }


def new_boundary() -> str:
    """Return a fresh, unguessable boundary token."""
    return f"{BOUNDARY_PREFIX}{secrets.token_hex(16)}"


def detect_content_type(file_name: str) -> str:
    """Map a file name's extension to a MIME type (case-insensitive)."""
    _, dot, extension = file_name.rpartition(".")
    if not dot:
        return DEFAULT_CONTENT_TYPE
    return CONTENT_TYPES.get(extension.lower(), DEFAULT_CONTENT_TYPE)


def decode_payload(data: Payload) -> bytes:
    """Return raw bytes, decoding *data* from base64 when it is text.

    Raises:
        InvalidUsageError: If a text payload is not valid base64.
    """
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidUsageError(f"File data is not valid base64: {exc}") from exc


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "").replace("\n", "")


def build_multipart_body(
    file_data: Payload,
    file_name: str,
    category_id: Optional[Union[str, int]] = None,
    boundary: Optional[str] = None,
) -> MultipartBody:
    """Encode a single-file upload form.

    Args:
        file_data: File content as bytes, or as base64 text.
        file_name: Name sent in the ``filename`` parameter; its extension
            selects the part's ``Content-Type``.
        category_id: Optional file category; adds a second ``category``
            part when given.
        boundary: Fixed boundary, mainly for tests. A random one is
            generated when omitted.

    Returns:
        The encoded :class:`MultipartBody`.
    """
    boundary = boundary or new_boundary()
    payload = decode_payload(file_data)

    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="{_quote(file_name)}"\r\n'
        f"Content-Type: {detect_content_type(file_name)}\r\n"
        "\r\n"
    )

    tail = "\r\n"
    if category_id is not None and str(category_id) != "":
        tail += (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="category"\r\n'
            "\r\n"
            f"{category_id}\r\n"
        )
    tail += f"--{boundary}--\r\n"

    content = head.encode("utf-8") + payload + tail.encode("utf-8")
    return MultipartBody(boundary=boundary, content=content)
