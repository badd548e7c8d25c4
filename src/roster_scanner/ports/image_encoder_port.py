from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ImageEncoderPort(Protocol):
    def encode(self, file_bytes: bytes, mime_type: str) -> str:
        """Return a compressed image as base64 (no data: prefix)."""
