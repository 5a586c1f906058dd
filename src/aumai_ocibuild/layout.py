"""Reading back and verifying a finished OCI image layout directory."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from .digest import DigestWriter, blob_path, parse_digest
from .errors import InputError
from .models import MEDIA_TYPE_MANIFEST, Descriptor, ImageConfig, ImageIndex, ImageManifest

__all__ = [
    "OciLayout",
]

_CHUNK_SIZE = 65536

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class OciLayout:
    """Read-only view of an image layout directory written by ``ImageBuilder``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def index(self) -> ImageIndex:
        return self._read(self.root / "index.json", ImageIndex)

    def manifest_descriptor(self) -> Descriptor:
        for descriptor in self.index().manifests:
            if descriptor.media_type == MEDIA_TYPE_MANIFEST:
                return descriptor
        raise InputError(f"no image manifest listed in {self.root / 'index.json'}")

    def manifest(self) -> ImageManifest:
        return self._read(self.blob(self.manifest_descriptor().digest), ImageManifest)

    def config(self) -> ImageConfig:
        return self._read(self.blob(self.manifest().config.digest), ImageConfig)

    def blob(self, digest: str) -> Path:
        return self.root / blob_path(digest)

    def verify_blobs(self) -> list[tuple[str, bool]]:
        """
        Re-hash the manifest, its config and every layer blob.

        Returns a list of (digest, is_valid) tuples.  A blob is valid when it
        exists and its content hashes to its digest.
        """
        manifest_descriptor = self.manifest_descriptor()
        manifest = self.manifest()
        results: list[tuple[str, bool]] = []
        for descriptor in [manifest_descriptor, manifest.config, *manifest.layers]:
            results.append((descriptor.digest, self._check(descriptor.digest)))
        return results

    def _check(self, digest: str) -> bool:
        path = self.blob(digest)
        if not path.is_file():
            return False
        algorithm, _ = parse_digest(digest)
        try:
            writer = DigestWriter(algorithm)
        except ValueError:
            return False
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
                writer.write(chunk)
        return writer.digest == digest

    def _read(self, path: Path, model: type[_ModelT]) -> _ModelT:
        try:
            return model.model_validate(json.loads(path.read_bytes()))
        except OSError as exc:
            raise InputError(f"unable to read {path}: {exc}") from exc
        except ValueError as exc:
            raise InputError(f"error parsing {path}: {exc}") from exc
