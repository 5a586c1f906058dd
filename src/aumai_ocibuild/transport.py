"""Image transport: pulling base archives and pushing finished layouts via skopeo."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import TransportError

__all__ = [
    "Credentials",
    "ImageTransport",
    "SkopeoTransport",
    "redact_command_for_log",
]

logger = logging.getLogger(__name__)

_SECRET_FLAGS = ("--src-creds", "--dest-creds", "--creds")


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = ""

    def as_flag_value(self) -> str:
        return f"{self.username}:{self.password}" if self.password else self.username


class ImageTransport(Protocol):
    """What the builder needs from a registry client."""

    def pull(
        self,
        source_ref: str,
        archive_path: Path,
        credentials: Credentials | None = None,
        insecure: bool = False,
    ) -> None: ...

    def push(
        self,
        layout_dir: Path,
        dest_ref: str,
        credentials: Credentials | None = None,
        insecure: bool = False,
    ) -> None: ...


def redact_command_for_log(command: list[str]) -> list[str]:
    redacted: list[str] = []
    hide_next = False
    for part in command:
        if hide_next:
            redacted.append("***")
            hide_next = False
            continue
        flag, sep, _ = part.partition("=")
        if flag in _SECRET_FLAGS:
            if sep:
                redacted.append(f"{flag}=***")
            else:
                redacted.append(part)
                hide_next = True
            continue
        redacted.append(part)
    return redacted


class SkopeoTransport:
    """
    Thin ``skopeo copy`` wrapper.

    References are skopeo-style (``docker://registry/name:tag``,
    ``docker-daemon:name:tag``, ...). Pulls land in an ``oci-archive:`` file,
    pushes read from an ``oci:`` layout directory.
    """

    def __init__(self, executable: str = "skopeo", timeout_seconds: float = 600.0) -> None:
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    def pull(
        self,
        source_ref: str,
        archive_path: Path,
        credentials: Credentials | None = None,
        insecure: bool = False,
    ) -> None:
        command = [self.executable, "copy"]
        if credentials is not None:
            command += ["--src-creds", credentials.as_flag_value()]
        if insecure:
            command.append("--src-tls-verify=false")
        command += [source_ref, f"oci-archive:{archive_path}"]
        logger.info("Pulling %s into %s", source_ref, archive_path)
        self._run(command)

    def push(
        self,
        layout_dir: Path,
        dest_ref: str,
        credentials: Credentials | None = None,
        insecure: bool = False,
    ) -> None:
        command = [self.executable, "copy"]
        if credentials is not None:
            command += ["--dest-creds", credentials.as_flag_value()]
        if insecure:
            command.append("--dest-tls-verify=false")
        command += [f"oci:{layout_dir}", dest_ref]
        logger.info("Pushing %s to %s", layout_dir, dest_ref)
        self._run(command)

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        redacted = " ".join(redact_command_for_log(command))
        logger.debug("transport command cmd=%s", redacted)
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise TransportError(
                f"{self.executable} not found. Install skopeo and ensure it is available in PATH."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise TransportError(
                f"transport command timed out after {self.timeout_seconds:.1f}s cmd='{redacted}'"
            ) from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            message = f"transport command failed (exit={result.returncode}) cmd='{redacted}'"
            raise TransportError(f"{message} err='{detail}'" if detail else message)
        return result
