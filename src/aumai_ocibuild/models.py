"""Pydantic models for aumai-ocibuild."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "MEDIA_TYPE_CONFIG",
    "MEDIA_TYPE_INDEX",
    "MEDIA_TYPE_LAYER_GZIP",
    "MEDIA_TYPE_MANIFEST",
    "BaseImage",
    "BuildSpec",
    "BuiltLayer",
    "ContainerConfig",
    "Descriptor",
    "DirEntry",
    "FileEntry",
    "ImageConfig",
    "ImageIndex",
    "ImageLayoutMarker",
    "ImageManifest",
    "PortSpec",
    "RootFS",
]

MEDIA_TYPE_LAYER_GZIP = "application/vnd.oci.image.layer.v1.tar+gzip"
MEDIA_TYPE_CONFIG = "application/vnd.oci.image.config.v1+json"
MEDIA_TYPE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_INDEX = "application/vnd.oci.image.index.v1+json"


class _Document(BaseModel):
    """Base for OCI JSON documents; fields use the OCI key names as aliases."""

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready dict using OCI key names, omitting unset values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# OCI documents
# ---------------------------------------------------------------------------


class Descriptor(_Document):
    """Content address of a blob: media type, digest and byte size."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    media_type: str = Field(alias="mediaType")
    digest: str            # <algorithm>:<hex>
    size: int              # bytes
    annotations: dict[str, str] | None = None


class ImageLayoutMarker(_Document):
    """Contents of the ``oci-layout`` file at the root of a layout."""

    image_layout_version: str = Field(default="1.0.0", alias="imageLayoutVersion")


class ContainerConfig(_Document):
    """Process defaults stored under ``config`` in an image config."""

    user: str | None = Field(default=None, alias="User")
    exposed_ports: dict[str, dict[str, Any]] | None = Field(
        default=None, alias="ExposedPorts"
    )
    env: list[str] | None = Field(default=None, alias="Env")
    entrypoint: list[str] | None = Field(default=None, alias="Entrypoint")
    cmd: list[str] | None = Field(default=None, alias="Cmd")
    working_dir: str | None = Field(default=None, alias="WorkingDir")
    labels: dict[str, str] | None = Field(default=None, alias="Labels")
    stop_signal: str | None = Field(default=None, alias="StopSignal")


class RootFS(_Document):
    type: str = "layers"
    diff_ids: list[str] = Field(default_factory=list)


class ImageConfig(_Document):
    """
    OCI image configuration.

    Follows the OCI Image Configuration Specification
    https://github.com/opencontainers/image-spec/blob/main/config.md
    """

    architecture: str = ""
    os: str = ""
    config: ContainerConfig | None = None
    rootfs: RootFS = Field(default_factory=RootFS)


class ImageManifest(_Document):
    """
    OCI Image Manifest (schema version 2).

    Follows the OCI Image Manifest Specification
    https://github.com/opencontainers/image-spec/blob/main/manifest.md
    """

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default=MEDIA_TYPE_MANIFEST, alias="mediaType")
    config: Descriptor
    layers: list[Descriptor] = Field(default_factory=list)


class ImageIndex(_Document):
    """Top-level ``index.json`` of an image layout."""

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str | None = Field(default=MEDIA_TYPE_INDEX, alias="mediaType")
    manifests: list[Descriptor] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Build inputs
# ---------------------------------------------------------------------------


class FileEntry(BaseModel):
    """A file copied into the new layer."""

    source: Path
    name: str | None = None    # defaults to the final component of source
    mode: str | None = None    # octal, defaults to 644


class DirEntry(BaseModel):
    """A directory created in the new layer, with nested children."""

    name: str
    mode: str | None = None    # octal, defaults to 755
    dirs: list[DirEntry] = Field(default_factory=list)
    files: list[FileEntry] = Field(default_factory=list)


DirEntry.model_rebuild()


class PortSpec(BaseModel):
    port: int
    transport: str | None = None   # tcp (default), udp or sctp


class BuildSpec(BaseModel):
    """Everything a single image build needs."""

    output_dir: Path
    base: Path | None = None
    architecture: str = ""
    os: str = ""
    files: list[FileEntry] = Field(default_factory=list)
    dirs: list[DirEntry] = Field(default_factory=list)
    clear_env: bool = False
    add_env: dict[str, str] = Field(default_factory=dict)
    working_dir: str = ""
    user: str = ""
    entrypoint: list[str] | None = None
    cmd: list[str] | None = None
    ports: list[PortSpec] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    stop_signal: str = ""
    verify_base_digests: bool = False


# ---------------------------------------------------------------------------
# Build results
# ---------------------------------------------------------------------------


class BuiltLayer(BaseModel):
    """A freshly built layer with both of its digests."""

    digest: str            # sha256 of the compressed blob
    diff_id: str           # sha256 of the uncompressed tar stream
    size: int              # compressed bytes
    media_type: str = MEDIA_TYPE_LAYER_GZIP

    def descriptor(self) -> Descriptor:
        return Descriptor(media_type=self.media_type, digest=self.digest, size=self.size)


class BaseImage(BaseModel):
    """What a base image contributes to a build."""

    manifest: ImageManifest
    config: ImageConfig

    @property
    def layers(self) -> list[Descriptor]:
        return list(self.manifest.layers)

    @property
    def diff_ids(self) -> list[str]:
        return list(self.config.rootfs.diff_ids)
