"""Filesystem layers consumed by the image builder."""

from __future__ import annotations

import gzip
import hashlib
import io
from pathlib import Path
from typing import Protocol, runtime_checkable

from .models import OCI_LAYER

__all__ = [
    "Layer",
    "TarballLayer",
    "sha256_bytes",
]

_GZIP_MAGIC = b"\x1f\x8b"


def sha256_bytes(data: bytes) -> str:
    """Return 'sha256:<hex>' digest for *data*."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


@runtime_checkable
class Layer(Protocol):
    """
    A content-addressed filesystem diff.

    ``digest`` identifies the compressed blob, ``diff_id`` the uncompressed
    tar stream. Implementations must not change once constructed.
    """

    def digest(self) -> str: ...

    def diff_id(self) -> str: ...

    def size(self) -> int: ...

    def media_type(self) -> str: ...

    def compressed(self) -> bytes: ...

    def uncompressed(self) -> bytes: ...


class TarballLayer:
    """
    A layer backed by a tar archive, plain or gzip-compressed.

    Plain archives are compressed with a zero mtime so the same input always
    yields the same digest. Blobs are loaded lazily and then cached.
    """

    def __init__(
        self,
        path: str | None = None,
        data: bytes | None = None,
        media_type: str = OCI_LAYER,
    ) -> None:
        if (path is None) == (data is None):
            raise ValueError("exactly one of path or data is required")
        self._path = path
        self._data = data
        self._media_type = media_type
        self._compressed: bytes | None = None
        self._uncompressed: bytes | None = None

    @classmethod
    def from_file(cls, path: str, media_type: str = OCI_LAYER) -> TarballLayer:
        return cls(path=path, media_type=media_type)

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str = OCI_LAYER) -> TarballLayer:
        return cls(data=data, media_type=media_type)

    def __repr__(self) -> str:
        source = self._path if self._path is not None else f"<{len(self._data or b'')} bytes>"
        return f"TarballLayer({source})"

    def _raw(self) -> bytes:
        if self._data is not None:
            return self._data
        return Path(str(self._path)).read_bytes()

    def compressed(self) -> bytes:
        if self._compressed is None:
            raw = self._raw()
            if raw.startswith(_GZIP_MAGIC):
                self._compressed = raw
            else:
                buf = io.BytesIO()
                with gzip.GzipFile(fileobj=buf, mode="wb", mtime=0) as gz:
                    gz.write(raw)
                self._compressed = buf.getvalue()
        return self._compressed

    def uncompressed(self) -> bytes:
        if self._uncompressed is None:
            raw = self._raw()
            if raw.startswith(_GZIP_MAGIC):
                self._uncompressed = gzip.decompress(raw)
            else:
                self._uncompressed = raw
        return self._uncompressed

    def digest(self) -> str:
        return sha256_bytes(self.compressed())

    def diff_id(self) -> str:
        return sha256_bytes(self.uncompressed())

    def size(self) -> int:
        return len(self.compressed())

    def media_type(self) -> str:
        return self._media_type
