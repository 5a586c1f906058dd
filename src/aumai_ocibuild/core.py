"""Core logic for aumai-ocibuild."""

from __future__ import annotations

import logging
import tempfile

from .base import BaseImageReader
from .compose import ConfigComposer
from .errors import OutputError
from .layer import LayerBuilder
from .manifest import ManifestAssembler
from .models import BaseImage, BuildSpec, BuiltLayer, Descriptor
from .store import BlobStore, BuildHashAccumulator

__all__ = [
    "ImageBuilder",
    "build_image",
]

logger = logging.getLogger(__name__)


class ImageBuilder:
    """
    Assembles an OCI image layout directory from a ``BuildSpec``.

    Output layout::

        oci-layout
        index.json              # points at the manifest
        blobs/sha256/<hex>      # new layer, base layers, config, manifest

    Layer order in the manifest (and in ``rootfs.diff_ids``) is the base
    image's layers followed by the newly built layer.
    """

    def build(self, spec: BuildSpec) -> str:
        """
        Build the image described by *spec* into ``spec.output_dir``.

        Returns the build hash: a sha256 hex string over every file written,
        stable for identical inputs.
        """
        accumulator = BuildHashAccumulator()
        store = BlobStore(spec.output_dir, accumulator)
        store.initialize()

        new_layer = self.write_layer(spec, store)

        layers: list[Descriptor] = []
        diff_ids: list[str] = []
        base: BaseImage | None = None
        if spec.base is not None:
            with BaseImageReader(spec.base) as reader:
                base = reader.load()
                reader.republish(base, store, verify=spec.verify_base_digests)
            layers.extend(base.layers)
            diff_ids.extend(base.diff_ids)

        layers.append(new_layer.descriptor())
        diff_ids.append(new_layer.diff_id)

        config = ConfigComposer(spec, base.config if base is not None else None).compose(diff_ids)
        ManifestAssembler(store).assemble(config, layers)

        build_hash = accumulator.hexdigest()
        logger.info("Built image layout %s (build hash %s)", spec.output_dir, build_hash)
        return build_hash

    def write_layer(self, spec: BuildSpec, store: BlobStore) -> BuiltLayer:
        """Build the new layer into a scratch file, then publish it to *store*."""
        try:
            scratch = tempfile.TemporaryFile(prefix=".ocibuild-layer-")
        except OSError as exc:
            raise OutputError(f"error creating temp file for new layer: {exc}") from exc
        with scratch:
            try:
                layer = LayerBuilder(spec.files, spec.dirs).build(scratch)
                scratch.seek(0)
            except OSError as exc:
                raise OutputError(f"error writing new layer to temp file: {exc}") from exc
            store.copy_blob(layer.digest, scratch)
        return layer


def build_image(spec: BuildSpec) -> str:
    """Build *spec* and return its build hash."""
    return ImageBuilder().build(spec)
