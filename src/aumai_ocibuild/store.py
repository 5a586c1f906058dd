"""Write-once blob store for an OCI image layout, and the build hash."""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from pydantic import BaseModel

from .digest import DigestWriter, TeeWriter, blob_path, canonical_json, parse_digest, sha256_bytes, sha256_file
from .errors import InputError, OutputError
from .models import Descriptor, ImageLayoutMarker

__all__ = [
    "BlobStore",
    "BuildHashAccumulator",
]

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536
_LAYOUT_FILENAME = "oci-layout"


class BuildHashAccumulator:
    """
    Records the content digest of every file a build writes.

    The final hash covers the canonical JSON of ``{relative path: digest}``,
    so it is independent of write order and of where the layout lives.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def record(self, path: str, digest: str) -> None:
        self._entries[path] = digest

    @property
    def entries(self) -> dict[str, str]:
        return dict(self._entries)

    def hexdigest(self) -> str:
        return hashlib.sha256(canonical_json(self._entries)).hexdigest()


class BlobStore:
    """
    Content-addressed storage rooted at an image layout directory.

    Layout::

        oci-layout
        index.json
        blobs/<algorithm>/<hex>

    Blobs are write-once: an existing blob path is never rewritten.
    """

    def __init__(
        self, root: str | Path, accumulator: BuildHashAccumulator | None = None
    ) -> None:
        self.root = Path(root)
        self.accumulator = accumulator or BuildHashAccumulator()

    def initialize(self) -> None:
        """Create the layout directory and its ``oci-layout`` marker."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(f"error creating image layout directory {self.root}: {exc}") from exc
        self.write_file(_LAYOUT_FILENAME, canonical_json(ImageLayoutMarker()))

    def path_for(self, digest: str) -> Path:
        return self.root / blob_path(digest)

    def write_file(self, name: str, contents: bytes) -> None:
        """Write a layout-level file such as ``index.json``."""
        path = self.root / name
        try:
            path.write_bytes(contents)
        except OSError as exc:
            raise OutputError(f"error writing {path}: {exc}") from exc
        self.accumulator.record(name, sha256_bytes(contents))

    def write_blob(self, digest: str, contents: bytes) -> None:
        rel = blob_path(digest)
        path = self.root / rel
        if path.exists():
            logger.debug("Blob %s already present, not rewriting", digest)
            self.accumulator.record(rel, sha256_file(path))
            return
        with self._staged(path) as fh:
            fh.write(contents)
        self.accumulator.record(rel, sha256_bytes(contents))

    def write_document(self, document: BaseModel, media_type: str) -> Descriptor:
        """Serialize *document* canonically, store it, and return its descriptor."""
        contents = canonical_json(document)
        digest = sha256_bytes(contents)
        self.write_blob(digest, contents)
        return Descriptor(media_type=media_type, digest=digest, size=len(contents))

    def copy_blob(self, digest: str, source: BinaryIO, verify: bool = False) -> int:
        """
        Stream *source* into the blob at *digest* and return the bytes copied.

        The content lands in a temporary file beside the blob and is moved into
        place only once fully copied, so a failed copy never leaves a partial
        blob behind. With *verify*, the content is re-hashed with the digest's
        algorithm on the way through and a mismatch raises ``InputError``.
        """
        rel = blob_path(digest)
        path = self.root / rel
        if path.exists():
            logger.debug("Blob %s already present, not rewriting", digest)
            self.accumulator.record(rel, sha256_file(path))
            return path.stat().st_size

        record = DigestWriter()
        sinks: list[DigestWriter] = [record]
        checker: DigestWriter | None = None
        if verify:
            algorithm, _ = parse_digest(digest)
            try:
                checker = DigestWriter(algorithm)
            except ValueError as exc:
                raise InputError(f"cannot verify {digest}: unsupported digest algorithm") from exc
            sinks.append(checker)

        with self._staged(path) as fh:
            tee = TeeWriter(fh, *sinks)
            while True:
                try:
                    chunk = source.read(_CHUNK_SIZE)
                except OSError as exc:
                    raise InputError(f"error reading content for blob {digest}: {exc}") from exc
                if not chunk:
                    break
                tee.write(chunk)
            if checker is not None and checker.digest != digest:
                raise InputError(
                    f"blob content does not match its digest {digest} (got {checker.digest})"
                )

        self.accumulator.record(rel, record.digest)
        return record.size

    @contextmanager
    def _staged(self, path: Path) -> Iterator[BinaryIO]:
        """Yield a temporary file that replaces *path* only if the block succeeds."""
        self._ensure_parent(path)
        try:
            tmp = tempfile.NamedTemporaryFile(dir=path.parent, prefix=f".{path.name}.", delete=False)
        except OSError as exc:
            raise OutputError(f"error writing blob {path}: {exc}") from exc
        tmp_path = Path(tmp.name)
        try:
            try:
                with tmp:
                    yield tmp
                os.replace(tmp_path, path)
            except OSError as exc:
                raise OutputError(f"error writing blob {path}: {exc}") from exc
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    def _ensure_parent(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(f"unable to create parent directories for {path}: {exc}") from exc
