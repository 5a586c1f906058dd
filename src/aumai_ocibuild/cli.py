"""CLI entry point for aumai-ocibuild."""

from __future__ import annotations

import logging
import sys
import tempfile
from pathlib import Path

import click

from .core import ImageBuilder
from .errors import BuildError, ConfigurationError
from .layout import OciLayout
from .settings import BuildConfig, load_config, render_reference
from .transport import ImageTransport, SkopeoTransport

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.version_option()
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def main(log_level: str) -> None:
    """AumAI OCIBuild: assemble OCI images without a container runtime."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _ensure_base(config: BuildConfig, transport: ImageTransport) -> None:
    if config.from_path is None or config.from_path.exists():
        return
    if not config.from_pull:
        raise ConfigurationError(
            f"no FROM image exists at {config.from_path}, and no from_pull reference configured"
        )
    config.from_path.parent.mkdir(parents=True, exist_ok=True)
    transport.pull(
        config.from_pull,
        config.from_path,
        credentials=config.from_credentials(),
        insecure=config.from_insecure,
    )


def _build_and_push(config: BuildConfig, output_dir: Path, transport: ImageTransport) -> str:
    build_hash = ImageBuilder().build(config.to_build_spec(output_dir))
    if config.dest:
        dest = render_reference(config.dest, build_hash)
        transport.push(
            output_dir,
            dest,
            credentials=config.dest_credentials(),
            insecure=config.dest_insecure,
        )
        click.echo(f"Pushed      : {dest}")
    return build_hash


@main.command("build")
@click.argument(
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
)
@click.option(
    "--output",
    "output_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Image layout directory to write (overrides the config's output).",
)
def build_command(config_path: str, output_dir: str | None) -> None:
    """Build an OCI image layout from a JSON build config."""
    transport = SkopeoTransport()
    try:
        config = load_config(config_path)
        if output_dir is not None:
            config = config.model_copy(update={"output": Path(output_dir).absolute()})
        _ensure_base(config, transport)
        if config.output is not None:
            build_hash = _build_and_push(config, config.output, transport)
            click.echo(f"Image layout: {config.output}")
        else:
            with tempfile.TemporaryDirectory(prefix=".ocibuild-image-") as tmp:
                build_hash = _build_and_push(config, Path(tmp), transport)
    except (BuildError, OSError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Build hash  : {build_hash}")


@main.command("inspect")
@click.argument(
    "layout_dir",
    type=click.Path(exists=True, file_okay=False),
)
def inspect_command(layout_dir: str) -> None:
    """Inspect an image layout directory and verify its blobs."""
    layout = OciLayout(layout_dir)
    try:
        manifest = layout.manifest()
        config = layout.config()
        verification = layout.verify_blobs()
    except BuildError as exc:
        click.echo(f"Error inspecting layout: {exc}", err=True)
        sys.exit(1)

    process = config.config
    click.echo(f"Platform : {config.os}/{config.architecture}")
    if process is not None:
        if process.entrypoint:
            click.echo(f"Entrypoint: {' '.join(process.entrypoint)}")
        if process.cmd:
            click.echo(f"Cmd      : {' '.join(process.cmd)}")
        if process.env:
            click.echo(f"Env      : {', '.join(process.env)}")
        if process.exposed_ports:
            click.echo(f"Ports    : {', '.join(sorted(process.exposed_ports))}")

    click.echo(f"\nLayers ({len(manifest.layers)}):")
    for layer, diff_id in zip(manifest.layers, config.rootfs.diff_ids):
        size_kb = layer.size / 1024
        click.echo(f"  {layer.digest[:23]}...  {size_kb:8.1f} KB  diff {diff_id[:23]}...")

    click.echo(f"\nBlob verification ({len(verification)} blobs):")
    all_valid = True
    for digest, valid in verification:
        status = "OK" if valid else "FAIL"
        if not valid:
            all_valid = False
        click.echo(f"  {status}  {digest[:30]}...")
    if all_valid:
        click.echo("All blobs verified.")
    else:
        click.echo("WARNING: some blobs failed verification!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
