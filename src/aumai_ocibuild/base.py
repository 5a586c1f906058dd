"""Reading a base image from an OCI archive and republishing its layers."""

from __future__ import annotations

import json
import logging
import posixpath
import tarfile
import zlib
from pathlib import Path
from typing import IO, Any, TypeVar

from pydantic import BaseModel

from .digest import blob_path
from .errors import InputError
from .models import MEDIA_TYPE_MANIFEST, BaseImage, ImageConfig, ImageIndex, ImageManifest
from .store import BlobStore

__all__ = [
    "BaseImageReader",
]

logger = logging.getLogger(__name__)

_INDEX_FILENAME = "index.json"

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _normalize(name: str) -> str:
    name = posixpath.normpath(name.lstrip("/"))
    while name.startswith("./"):
        name = name[2:]
    return name


class BaseImageReader:
    """
    Random-access reader for a single-platform OCI image archive.

    The archive is a tar of an OCI image layout::

        oci-layout
        index.json
        blobs/<algorithm>/<hex>

    Use as a context manager; members are looked up by path, so the index and
    manifest can be read before the blobs they reference.
    """

    def __init__(self, archive_path: str | Path) -> None:
        self.archive_path = Path(archive_path)
        self._tar: tarfile.TarFile | None = None
        self._members: dict[str, tarfile.TarInfo] = {}

    def __enter__(self) -> BaseImageReader:
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def open(self) -> None:
        try:
            self._tar = tarfile.open(self.archive_path, "r:*")
            members = self._tar.getmembers()
        except (OSError, tarfile.TarError, EOFError, zlib.error) as exc:
            self.close()
            raise InputError(f"unable to open base image {self.archive_path} as tar: {exc}") from exc
        self._members = {_normalize(m.name): m for m in members if not m.isdir()}
        logger.debug("Opened base image %s (%d entries)", self.archive_path, len(self._members))

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None

    def load(self) -> BaseImage:
        """Read the index, the image manifest it points at, and that manifest's config."""
        index = self._read_model(_INDEX_FILENAME, ImageIndex)
        candidates = [m for m in index.manifests if m.media_type == MEDIA_TYPE_MANIFEST]
        if not candidates:
            raise InputError(f"no image manifest listed in {_INDEX_FILENAME} of {self.archive_path}")
        if len(candidates) > 1:
            raise InputError(
                f"{self.archive_path} lists {len(candidates)} image manifests; "
                "only single-platform images are supported"
            )

        manifest_digest = candidates[0].digest
        manifest = self._read_model(
            blob_path(manifest_digest), ImageManifest, f"manifest {manifest_digest}"
        )
        config = self._read_model(
            blob_path(manifest.config.digest), ImageConfig, f"config {manifest.config.digest}"
        )
        if len(manifest.layers) != len(config.rootfs.diff_ids):
            raise InputError(
                f"base manifest {manifest_digest} has {len(manifest.layers)} layers "
                f"but its config lists {len(config.rootfs.diff_ids)} diff IDs"
            )
        logger.info(
            "Base image %s: %s/%s, %d layers",
            self.archive_path,
            config.os,
            config.architecture,
            len(manifest.layers),
        )
        return BaseImage(manifest=manifest, config=config)

    def republish(self, base: BaseImage, store: BlobStore, verify: bool = False) -> None:
        """Copy every base layer blob verbatim into *store* under the same digest."""
        for layer in base.layers:
            with self._open(blob_path(layer.digest), f"layer {layer.digest}") as source:
                try:
                    copied = store.copy_blob(layer.digest, source, verify=verify)
                except (tarfile.TarError, EOFError, zlib.error) as exc:
                    raise InputError(f"error reading base layer {layer.digest}: {exc}") from exc
            logger.debug("Republished base layer %s (%d bytes)", layer.digest, copied)

    def _open(self, path: str, what: str | None = None) -> IO[bytes]:
        if self._tar is None:
            raise InputError(f"base image {self.archive_path} is not open")
        member = self._members.get(path)
        fh = self._tar.extractfile(member) if member is not None else None
        if fh is None:
            raise InputError(
                f"unable to find {what or path} in base image {self.archive_path}"
            )
        return fh

    def _read_model(self, path: str, model: type[_ModelT], what: str | None = None) -> _ModelT:
        with self._open(path, what) as fh:
            contents = fh.read()
        try:
            return model.model_validate(json.loads(contents))
        except ValueError as exc:
            raise InputError(f"error parsing {what or path} in base image {self.archive_path}: {exc}") from exc
