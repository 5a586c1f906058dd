"""
aumai-ocibuild quickstart: working demo of build, inspect, and verify.

Run directly:

    python examples/quickstart.py

All demos use a temporary directory and clean up after themselves.
"""

from __future__ import annotations

import pathlib
import tempfile


# ---------------------------------------------------------------------------
# Demo 1: Build a scratch image
# ---------------------------------------------------------------------------

def demo_scratch_build(workdir: pathlib.Path) -> pathlib.Path:
    """Build a single-layer image from scratch and print its build hash."""
    print("\n=== Demo 1: Build a scratch image ===")

    from aumai_ocibuild.core import build_image
    from aumai_ocibuild.models import BuildSpec, DirEntry, FileEntry, PortSpec

    app = workdir / "app"
    app.write_text("#!/bin/sh\necho hello from ocibuild\n", encoding="utf-8")
    conf = workdir / "app.ini"
    conf.write_text("[server]\nport = 8080\n", encoding="utf-8")

    spec = BuildSpec(
        output_dir=workdir / "image",
        architecture="amd64",
        os="linux",
        files=[FileEntry(source=app, mode="755")],
        dirs=[DirEntry(name="etc", files=[FileEntry(source=conf)])],
        add_env={"APP_MODE": "demo"},
        cmd=["/app"],
        ports=[PortSpec(port=8080), PortSpec(port=8080, transport="tcp")],
        labels={"org.opencontainers.image.title": "quickstart"},
    )
    build_hash = build_image(spec)
    print(f"  Layout     : {spec.output_dir}")
    print(f"  Build hash : {build_hash}")
    return spec.output_dir


# ---------------------------------------------------------------------------
# Demo 2: Inspect the layout
# ---------------------------------------------------------------------------

def demo_inspect(layout_dir: pathlib.Path) -> None:
    """Read back the manifest and config that were just written."""
    print("\n=== Demo 2: Inspect the layout ===")

    from aumai_ocibuild.layout import OciLayout

    layout = OciLayout(layout_dir)
    manifest = layout.manifest()
    config = layout.config()
    print(f"  Platform : {config.os}/{config.architecture}")
    if config.config is not None:
        print(f"  Env      : {config.config.env}")
        print(f"  Cmd      : {config.config.cmd}")
        print(f"  Ports    : {sorted(config.config.exposed_ports or {})}")
    for layer, diff_id in zip(manifest.layers, config.rootfs.diff_ids):
        print(f"  Layer    : {layer.digest[:23]}...  ({layer.size} bytes)")
        print(f"  diff_id  : {diff_id[:23]}...")


# ---------------------------------------------------------------------------
# Demo 3: Verify blobs
# ---------------------------------------------------------------------------

def demo_verify(layout_dir: pathlib.Path) -> None:
    """Re-hash every blob the manifest references."""
    print("\n=== Demo 3: Verify blobs ===")

    from aumai_ocibuild.layout import OciLayout

    for digest, valid in OciLayout(layout_dir).verify_blobs():
        print(f"  {'OK  ' if valid else 'FAIL'}  {digest[:30]}...")


def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        layout_dir = demo_scratch_build(pathlib.Path(tmp))
        demo_inspect(layout_dir)
        demo_verify(layout_dir)
    print("\nDone.")


if __name__ == "__main__":
    main()
