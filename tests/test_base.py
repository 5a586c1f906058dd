"""Tests for aumai_ocibuild.base."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable

import pytest

from aumai_ocibuild.base import BaseImageReader
from aumai_ocibuild.errors import InputError
from aumai_ocibuild.store import BlobStore


class TestBaseImageReaderLoad:
    def test_load_reads_manifest_and_config(self, base_archive: Path) -> None:
        with BaseImageReader(base_archive) as reader:
            base = reader.load()
        assert len(base.layers) == 2
        assert len(base.diff_ids) == 2
        assert base.config.architecture == "arm64"
        assert base.config.os == "linux"
        assert base.config.config is not None
        assert base.config.config.env == ["A=1"]
        assert base.config.config.working_dir == "/srv"

    def test_dot_slash_member_names(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(member_prefix="./")
        with BaseImageReader(archive) as reader:
            base = reader.load()
        assert len(base.layers) == 2

    def test_config_without_process_section(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(process_config={})
        with BaseImageReader(archive) as reader:
            base = reader.load()
        assert base.config.config is not None
        assert base.config.config.env is None


class TestBaseImageReaderRepublish:
    def test_layers_copied_verbatim(self, base_archive: Path, tmp_path: Path) -> None:
        store = BlobStore(tmp_path / "out")
        with BaseImageReader(base_archive) as reader:
            base = reader.load()
            reader.republish(base, store)
        for layer in base.layers:
            data = store.path_for(layer.digest).read_bytes()
            assert len(data) == layer.size
            assert "sha256:" + hashlib.sha256(data).hexdigest() == layer.digest

    def test_republish_with_verification(self, base_archive: Path, tmp_path: Path) -> None:
        store = BlobStore(tmp_path / "out")
        with BaseImageReader(base_archive) as reader:
            base = reader.load()
            reader.republish(base, store, verify=True)
        assert all(store.path_for(layer.digest).is_file() for layer in base.layers)


class TestBaseImageReaderFailures:
    def test_missing_archive(self, tmp_path: Path) -> None:
        with pytest.raises(InputError, match="missing.tar"):
            with BaseImageReader(tmp_path / "missing.tar"):
                pass

    def test_not_a_tar(self, tmp_path: Path) -> None:
        bogus = tmp_path / "bogus.tar"
        bogus.write_bytes(b"this is not a tar archive" * 40)
        with pytest.raises(InputError, match="bogus.tar"):
            with BaseImageReader(bogus):
                pass

    def test_missing_index(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(omit=("index",))
        with BaseImageReader(archive) as reader:
            with pytest.raises(InputError, match="index.json"):
                reader.load()

    def test_missing_manifest_names_digest(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(omit=("manifest",))
        with BaseImageReader(archive) as reader:
            with pytest.raises(InputError, match="manifest sha256:"):
                reader.load()

    def test_missing_config_names_digest(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(omit=("config",))
        with BaseImageReader(archive) as reader:
            with pytest.raises(InputError, match="config sha256:"):
                reader.load()

    def test_missing_layer_names_digest(
        self, base_archive_factory: Callable[..., Path], tmp_path: Path
    ) -> None:
        archive = base_archive_factory(omit=("layer1",))
        with BaseImageReader(archive) as reader:
            base = reader.load()
            with pytest.raises(InputError, match=base.layers[1].digest):
                reader.republish(base, BlobStore(tmp_path / "out"))

    def test_multiple_manifests_rejected(self, base_archive_factory: Callable[..., Path]) -> None:
        archive = base_archive_factory(manifest_count=2)
        with BaseImageReader(archive) as reader:
            with pytest.raises(InputError, match="single-platform"):
                reader.load()
