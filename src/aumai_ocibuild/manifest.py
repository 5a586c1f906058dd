"""Writing the image config, manifest and index of a layout."""

from __future__ import annotations

import logging
from typing import Sequence

from .digest import canonical_json
from .errors import BuildError
from .models import MEDIA_TYPE_CONFIG, MEDIA_TYPE_MANIFEST, Descriptor, ImageConfig, ImageIndex, ImageManifest
from .store import BlobStore

__all__ = [
    "ManifestAssembler",
]

logger = logging.getLogger(__name__)

_INDEX_FILENAME = "index.json"


class ManifestAssembler:
    """Stores config and manifest blobs and points ``index.json`` at the manifest."""

    def __init__(self, store: BlobStore) -> None:
        self.store = store

    def assemble(self, config: ImageConfig, layers: Sequence[Descriptor]) -> Descriptor:
        """Write all three documents and return the manifest descriptor."""
        diff_ids = config.rootfs.diff_ids
        if len(layers) != len(diff_ids):
            raise BuildError(
                f"layer list has {len(layers)} entries but rootfs lists {len(diff_ids)} diff IDs"
            )

        config_descriptor = self.store.write_document(config, MEDIA_TYPE_CONFIG)
        manifest = ImageManifest(config=config_descriptor, layers=list(layers))
        manifest_descriptor = self.store.write_document(manifest, MEDIA_TYPE_MANIFEST)

        index = ImageIndex(manifests=[manifest_descriptor])
        self.store.write_file(_INDEX_FILENAME, canonical_json(index))
        logger.info(
            "Wrote manifest %s (config %s, %d layers)",
            manifest_descriptor.digest,
            config_descriptor.digest,
            len(layers),
        )
        return manifest_descriptor
