"""Digest helpers, canonical JSON and fan-out stream writers."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Protocol

from pydantic import BaseModel

from .errors import InputError

__all__ = [
    "DigestWriter",
    "TeeWriter",
    "blob_path",
    "canonical_json",
    "parse_digest",
    "sha256_bytes",
    "sha256_file",
]

_ALGORITHM_RE = re.compile(r"[a-z0-9]+(?:[+._-][a-z0-9]+)*")
_ENCODED_RE = re.compile(r"[a-zA-Z0-9=_-]+")
_CHUNK_SIZE = 65536


def sha256_file(path: Any) -> str:
    """Return 'sha256:<hex>' digest for the file at *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def sha256_bytes(data: bytes) -> str:
    """Return 'sha256:<hex>' digest for *data*."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def parse_digest(digest: str) -> tuple[str, str]:
    """
    Split ``<algorithm>:<hex>`` into its two parts.

    Raises ``InputError`` for anything that is not a well-formed digest, since
    both parts end up as path components under ``blobs/``.
    """
    algorithm, sep, encoded = digest.partition(":")
    if not sep or not _ALGORITHM_RE.fullmatch(algorithm) or not _ENCODED_RE.fullmatch(encoded):
        raise InputError(f"malformed digest {digest!r}")
    return algorithm, encoded


def blob_path(digest: str) -> str:
    """Return the layout-relative path ``blobs/<algorithm>/<hex>`` for *digest*."""
    algorithm, encoded = parse_digest(digest)
    return f"blobs/{algorithm}/{encoded}"


def canonical_json(document: Any) -> bytes:
    """
    Serialize *document* with sorted keys and compact separators.

    Every digested document goes through here so that its digest does not
    depend on dict insertion order.
    """
    if isinstance(document, BaseModel):
        document = document.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(
        document,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


class _Writable(Protocol):
    def write(self, data: bytes) -> Any: ...


class DigestWriter:
    """Write-only sink that hashes and counts everything written to it."""

    def __init__(self, algorithm: str = "sha256") -> None:
        self.algorithm = algorithm
        self._hash = hashlib.new(algorithm)
        self.size = 0

    def write(self, data: bytes) -> int:
        self._hash.update(data)
        self.size += len(data)
        return len(data)

    def flush(self) -> None:
        pass

    @property
    def digest(self) -> str:
        return f"{self.algorithm}:{self._hash.hexdigest()}"


class TeeWriter:
    """Write-only file object that copies every write to each of its sinks."""

    def __init__(self, *sinks: _Writable) -> None:
        self._sinks = sinks

    def write(self, data: bytes) -> int:
        for sink in self._sinks:
            sink.write(data)
        return len(data)

    def flush(self) -> None:
        for sink in self._sinks:
            flush = getattr(sink, "flush", None)
            if flush is not None:
                flush()
