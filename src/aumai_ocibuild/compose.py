"""Merging base-image config with build overrides."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from .errors import ConfigurationError
from .models import BuildSpec, ContainerConfig, ImageConfig, PortSpec, RootFS

__all__ = [
    "ConfigComposer",
    "exposed_ports",
]

logger = logging.getLogger(__name__)

_TRANSPORTS = ("tcp", "udp", "sctp")


def exposed_ports(ports: Iterable[PortSpec]) -> dict[str, dict[str, Any]]:
    """Return the ``ExposedPorts`` set as ``{"<port>/<transport>": {}}``."""
    result: dict[str, dict[str, Any]] = {}
    for spec in ports:
        transport = (spec.transport or "tcp").lower()
        if transport not in _TRANSPORTS:
            raise ConfigurationError(
                f"port {spec.port}: transport {spec.transport!r} must be one of {', '.join(_TRANSPORTS)}"
            )
        if not 1 <= spec.port <= 65535:
            raise ConfigurationError(f"port {spec.port} is out of range")
        result[f"{spec.port}/{transport}"] = {}
    return result


class ConfigComposer:
    """
    Produces the final image config from a build spec and an optional base config.

    Architecture, OS, Env, WorkingDir and User fall back to the base image;
    Entrypoint, Cmd, ExposedPorts, Labels and StopSignal come from the build
    spec only.
    """

    def __init__(self, spec: BuildSpec, base: ImageConfig | None = None) -> None:
        self.spec = spec
        self.base = base
        self._base_process = (base.config if base is not None else None) or ContainerConfig()

    def platform(self) -> tuple[str, str]:
        if self.base is None:
            missing = [n for n in ("architecture", "os") if not getattr(self.spec, n)]
            if missing:
                raise ConfigurationError(
                    f"{' and '.join(missing)} must be set when building without a base image"
                )
            return self.spec.architecture, self.spec.os
        architecture = self.spec.architecture or self.base.architecture
        os_name = self.spec.os or self.base.os
        if not architecture or not os_name:
            logger.warning("Base image does not declare its platform (architecture=%r, os=%r)",
                           architecture, os_name)
        return architecture, os_name

    def environment(self) -> list[str]:
        # Base entries keep their order; override keys are sorted so that the
        # result does not depend on mapping iteration order.
        env: list[str] = [] if self.spec.clear_env else list(self._base_process.env or [])
        env.extend(f"{key}={self.spec.add_env[key]}" for key in sorted(self.spec.add_env))
        return env

    def process_config(self) -> ContainerConfig:
        return ContainerConfig(
            user=self.spec.user or self._base_process.user or None,
            exposed_ports=exposed_ports(self.spec.ports) or None,
            env=self.environment(),
            entrypoint=_list_or_none(self.spec.entrypoint),
            cmd=_list_or_none(self.spec.cmd),
            working_dir=self.spec.working_dir or self._base_process.working_dir or None,
            labels=dict(self.spec.labels) or None,
            stop_signal=self.spec.stop_signal or None,
        )

    def compose(self, diff_ids: Sequence[str]) -> ImageConfig:
        architecture, os_name = self.platform()
        return ImageConfig(
            architecture=architecture,
            os=os_name,
            config=self.process_config(),
            rootfs=RootFS(diff_ids=list(diff_ids)),
        )


def _list_or_none(values: Sequence[str] | None) -> list[str] | None:
    return list(values) if values else None
