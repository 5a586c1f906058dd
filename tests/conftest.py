"""Shared test fixtures for aumai-ocibuild."""

from __future__ import annotations

import gzip
import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Any, Callable

import pytest

from aumai_ocibuild.core import ImageBuilder
from aumai_ocibuild.models import BuildSpec, FileEntry

MANIFEST_TYPE = "application/vnd.oci.image.manifest.v1+json"
CONFIG_TYPE = "application/vnd.oci.image.config.v1+json"
LAYER_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"

BASE_PROCESS_CONFIG: dict[str, Any] = {
    "Env": ["A=1"],
    "Cmd": ["/old"],
    "Entrypoint": ["/bin/sh", "-c"],
    "WorkingDir": "/srv",
    "User": "app",
    "ExposedPorts": {"8080/tcp": {}},
    "Labels": {"base": "yes"},
    "StopSignal": "SIGINT",
}

BASE_LAYERS: list[dict[str, bytes]] = [
    {"etc/os-release": b"ID=testos\n"},
    {"bin/tool": b"#!/bin/sh\necho tool\n"},
]


def _sha256(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _gzip_layer(files: dict[str, bytes]) -> tuple[bytes, str]:
    raw = io.BytesIO()
    with tarfile.open(fileobj=raw, mode="w") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    raw_bytes = raw.getvalue()
    return gzip.compress(raw_bytes, mtime=0), _sha256(raw_bytes)


def write_base_archive(
    path: Path,
    layers: list[dict[str, bytes]] | None = None,
    process_config: dict[str, Any] | None = None,
    architecture: str = "arm64",
    os_name: str = "linux",
    omit: tuple[str, ...] = (),
    manifest_count: int = 1,
    member_prefix: str = "",
) -> Path:
    """
    Write an OCI image archive to *path*.

    *omit* may name ``"index"``, ``"manifest"``, ``"config"`` or ``"layer<i>"``
    to leave that member out of the archive.
    """
    layers = BASE_LAYERS if layers is None else layers
    members: dict[str, bytes] = {"oci-layout": b'{"imageLayoutVersion":"1.0.0"}'}

    layer_descriptors = []
    diff_ids = []
    for i, files in enumerate(layers):
        blob, diff_id = _gzip_layer(files)
        digest = _sha256(blob)
        layer_descriptors.append({"mediaType": LAYER_TYPE, "digest": digest, "size": len(blob)})
        diff_ids.append(diff_id)
        if f"layer{i}" not in omit:
            members[f"blobs/sha256/{digest[7:]}"] = blob

    config = {
        "architecture": architecture,
        "os": os_name,
        "created": "2024-01-01T00:00:00Z",
        "config": dict(BASE_PROCESS_CONFIG if process_config is None else process_config),
        "rootfs": {"type": "layers", "diff_ids": diff_ids},
        "history": [{"created_by": "test"}],
    }
    config_bytes = json.dumps(config, indent=2).encode()
    config_digest = _sha256(config_bytes)
    if "config" not in omit:
        members[f"blobs/sha256/{config_digest[7:]}"] = config_bytes

    manifest = {
        "schemaVersion": 2,
        "mediaType": MANIFEST_TYPE,
        "config": {"mediaType": CONFIG_TYPE, "digest": config_digest, "size": len(config_bytes)},
        "layers": layer_descriptors,
    }
    manifest_bytes = json.dumps(manifest, indent=2).encode()
    manifest_digest = _sha256(manifest_bytes)
    if "manifest" not in omit:
        members[f"blobs/sha256/{manifest_digest[7:]}"] = manifest_bytes

    index = {
        "schemaVersion": 2,
        "mediaType": "application/vnd.oci.image.index.v1+json",
        "manifests": [
            {
                "mediaType": MANIFEST_TYPE,
                "digest": manifest_digest,
                "size": len(manifest_bytes),
                "annotations": {"org.opencontainers.image.ref.name": "latest"},
            }
        ]
        * manifest_count,
    }
    if "index" not in omit:
        members["index.json"] = json.dumps(index).encode()

    with tarfile.open(path, "w") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(member_prefix + name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


# ---------------------------------------------------------------------------
# Source files
# ---------------------------------------------------------------------------


@pytest.fixture()
def hello_file(tmp_path: Path) -> Path:
    f = tmp_path / "src" / "hello"
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_bytes(b"#!/bin/sh\necho hello\n")
    return f


@pytest.fixture()
def data_file(tmp_path: Path) -> Path:
    f = tmp_path / "src" / "data.bin"
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_bytes(b"\x00\x01\x02\x03" * 4096)
    return f


# ---------------------------------------------------------------------------
# Base image archives
# ---------------------------------------------------------------------------


@pytest.fixture()
def base_archive(tmp_path: Path) -> Path:
    """A two-layer linux/arm64 base image archive."""
    return write_base_archive(tmp_path / "base.tar")


@pytest.fixture()
def base_archive_factory(tmp_path: Path) -> Callable[..., Path]:
    counter = iter(range(1000))

    def factory(**kwargs: Any) -> Path:
        return write_base_archive(tmp_path / f"base-{next(counter)}.tar", **kwargs)

    return factory


# ---------------------------------------------------------------------------
# Builds
# ---------------------------------------------------------------------------


@pytest.fixture()
def builder() -> ImageBuilder:
    return ImageBuilder()


@pytest.fixture()
def scratch_spec(tmp_path: Path, hello_file: Path) -> BuildSpec:
    return BuildSpec(
        output_dir=tmp_path / "out",
        architecture="amd64",
        os="linux",
        files=[FileEntry(source=hello_file, mode="755")],
    )


def read_json(path: Path) -> Any:
    return json.loads(path.read_bytes())


@pytest.fixture()
def load_json() -> Callable[[Path], Any]:
    return read_json
