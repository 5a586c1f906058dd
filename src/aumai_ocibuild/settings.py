"""JSON build configuration and destination reference templating."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import BuildSpec, DirEntry, FileEntry, PortSpec
from .transport import Credentials

__all__ = [
    "SHORT_HASH_LENGTH",
    "BuildConfig",
    "load_config",
    "render_reference",
]

SHORT_HASH_LENGTH = 8


class BuildConfig(BaseModel):
    """
    Contents of a build config file.

    Example::

        {
          "from": "base.tar",
          "from_pull": "docker://alpine:3.19",
          "dest": "docker://registry.example.com/app:{short_hash}",
          "files": [{"source": "build/app", "mode": "755"}],
          "cmd": ["/app"]
        }

    Relative paths are resolved against the current working directory.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    from_path: Path | None = Field(default=None, alias="from")
    from_pull: str | None = None
    from_user: str | None = None
    from_password: str | None = None
    from_insecure: bool = False
    dest: str | None = None
    dest_user: str | None = None
    dest_password: str | None = None
    dest_insecure: bool = False
    output: Path | None = None
    architecture: str = ""
    os: str = ""
    files: list[FileEntry] = Field(default_factory=list)
    dirs: list[DirEntry] = Field(default_factory=list)
    add_env: dict[str, str] = Field(default_factory=dict)
    clear_env: bool = False
    working_dir: str = ""
    user: str = ""
    entrypoint: list[str] | None = None
    cmd: list[str] | None = None
    ports: list[PortSpec] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)
    stop_signal: str = ""
    verify_base_digests: bool = False

    @field_validator("from_path", "output")
    @classmethod
    def _absolute(cls, value: Path | None) -> Path | None:
        return value.absolute() if value is not None else None

    def from_credentials(self) -> Credentials | None:
        return Credentials(self.from_user, self.from_password or "") if self.from_user else None

    def dest_credentials(self) -> Credentials | None:
        return Credentials(self.dest_user, self.dest_password or "") if self.dest_user else None

    def to_build_spec(self, output_dir: Path) -> BuildSpec:
        return BuildSpec(
            output_dir=output_dir,
            base=self.from_path,
            architecture=self.architecture,
            os=self.os,
            files=[_absolute_file(f) for f in self.files],
            dirs=[_absolute_dir(d) for d in self.dirs],
            clear_env=self.clear_env,
            add_env=self.add_env,
            working_dir=self.working_dir,
            user=self.user,
            entrypoint=self.entrypoint,
            cmd=self.cmd,
            ports=self.ports,
            labels=self.labels,
            stop_signal=self.stop_signal,
            verify_base_digests=self.verify_base_digests,
        )


def _absolute_file(entry: FileEntry) -> FileEntry:
    return entry.model_copy(update={"source": entry.source.absolute()})


def _absolute_dir(entry: DirEntry) -> DirEntry:
    return entry.model_copy(
        update={
            "dirs": [_absolute_dir(d) for d in entry.dirs],
            "files": [_absolute_file(f) for f in entry.files],
        }
    )


def load_config(path: str | Path) -> BuildConfig:
    """Read and validate a JSON build config file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"error reading config at {path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"error parsing config json at {path}: {exc}") from exc
    try:
        config = BuildConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config at {path}: {exc}") from exc
    if not config.dest and config.output is None:
        raise ConfigurationError(f"config at {path} sets neither dest nor output")
    return config


def render_reference(template: str, build_hash: str) -> str:
    """Substitute ``{hash}`` and ``{short_hash}`` in a destination reference."""
    return template.replace("{hash}", build_hash).replace(
        "{short_hash}", build_hash[:SHORT_HASH_LENGTH]
    )
