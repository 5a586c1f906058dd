"""Single-pass construction of a gzip-compressed filesystem layer."""

from __future__ import annotations

import gzip
import logging
import re
import stat
import tarfile
from pathlib import Path
from typing import BinaryIO, Sequence

from .digest import DigestWriter, TeeWriter
from .errors import ConfigurationError, InputError
from .models import BuiltLayer, DirEntry, FileEntry

__all__ = [
    "DEFAULT_DIR_MODE",
    "DEFAULT_FILE_MODE",
    "LayerBuilder",
    "parse_mode",
]

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = "644"
DEFAULT_DIR_MODE = "755"

_MODE_RE = re.compile(r"(?:0o)?[0-7]+")


def parse_mode(mode: str | None, default: str, path: str) -> int:
    """Parse an octal permission string such as ``"755"`` or ``"0o644"``."""
    text = mode if mode else default
    if not _MODE_RE.fullmatch(text):
        raise ConfigurationError(f"{path}: mode {text!r} is not valid octal")
    value = int(text, 8)
    if not 0 <= value <= 0o7777:
        raise ConfigurationError(f"{path}: mode {text!r} is out of range")
    return value


def _check_name(name: str, kind: str) -> None:
    if not name or name in (".", ".."):
        raise ConfigurationError(f"{kind} name {name!r} is not a valid entry name")
    if "/" in name:
        raise ConfigurationError(
            f"{kind} {name} name contains slashes; subdirs must be nested as objects"
        )


def _join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _tar_info(path: str, type_: bytes, mode: int) -> tarfile.TarInfo:
    info = tarfile.TarInfo(path)
    info.type = type_
    info.mode = mode
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


class LayerBuilder:
    """
    Builds one layer from file and directory entries.

    The tar stream is hashed (diff ID) and gzip-compressed at the same time;
    the compressed stream is hashed (blob digest) while being written to the
    sink, so the layer is never held in memory::

        tar -> tee(uncompressed digest, gzip -> tee(compressed digest, sink))
    """

    def __init__(
        self,
        files: Sequence[FileEntry] = (),
        dirs: Sequence[DirEntry] = (),
    ) -> None:
        self.files = list(files)
        self.dirs = list(dirs)

    def build(self, sink: BinaryIO) -> BuiltLayer:
        """Write the compressed layer to *sink* and return its digests."""
        uncompressed = DigestWriter()
        compressed = DigestWriter()
        with gzip.GzipFile(
            filename="", mode="wb", fileobj=TeeWriter(compressed, sink), mtime=0
        ) as gz:
            with tarfile.open(
                fileobj=TeeWriter(uncompressed, gz),
                mode="w|",
                format=tarfile.PAX_FORMAT,
            ) as tar:
                for entry in self.files:
                    self._add_file(tar, "", entry)
                for entry in self.dirs:
                    self._add_dir(tar, "", entry)

        layer = BuiltLayer(
            digest=compressed.digest,
            diff_id=uncompressed.digest,
            size=compressed.size,
        )
        logger.debug(
            "Built layer %s (diff_id %s, %d bytes)", layer.digest, layer.diff_id, layer.size
        )
        return layer

    def _add_file(self, tar: tarfile.TarFile, parent: str, entry: FileEntry) -> None:
        source = Path(entry.source)
        name = entry.name or source.name
        _check_name(name, "File")
        path = _join(parent, name)
        mode = parse_mode(entry.mode, DEFAULT_FILE_MODE, path)

        try:
            st = source.stat()
        except OSError as exc:
            raise InputError(f"error looking up metadata for layer file {source}: {exc}") from exc
        if not stat.S_ISREG(st.st_mode):
            raise InputError(f"layer file source {source} is not a regular file")

        info = _tar_info(path, tarfile.REGTYPE, mode)
        info.size = st.st_size
        try:
            with source.open("rb") as fh:
                tar.addfile(info, fh)
        except OSError as exc:
            raise InputError(f"error copying data from {source}: {exc}") from exc
        logger.debug("Added file %s from %s (mode %o)", path, source, mode)

    def _add_dir(self, tar: tarfile.TarFile, parent: str, entry: DirEntry) -> None:
        _check_name(entry.name, "Dir")
        path = _join(parent, entry.name)
        mode = parse_mode(entry.mode, DEFAULT_DIR_MODE, path)
        tar.addfile(_tar_info(path, tarfile.DIRTYPE, mode))
        logger.debug("Added dir %s (mode %o)", path, mode)
        for child in entry.dirs:
            self._add_dir(tar, path, child)
        for child in entry.files:
            self._add_file(tar, path, child)
