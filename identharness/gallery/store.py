"""Gallery lifecycle: finalize, load for search, and live insert/delete."""

from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from identharness.errors import InputFileError, StageError
from identharness.gallery.edb import load_templates
from identharness.interface import IdentInterface
from identharness.types import GalleryType

LOGGER = logging.getLogger("identharness.gallery.store")


class GalleryStore:
    """In-memory id -> template index owned by one identification session.

    Mutation and lookup are never interleaved concurrently, so the store does
    no locking of its own.
    """

    def __init__(self, templates: Optional[Dict[str, bytes]] = None) -> None:
        self._templates: "OrderedDict[str, bytes]" = OrderedDict(templates or {})

    @classmethod
    def load(cls, edb_path: Path, manifest_path: Path) -> "GalleryStore":
        """Parse the manifest and seek each template out of the EDB."""
        store = cls(load_templates(edb_path, manifest_path))
        LOGGER.info("Loaded gallery with %d templates from %s", len(store), manifest_path)
        return store

    def insert(self, template: bytes, template_id: str) -> None:
        """Add one live entry; re-inserting an id replaces its template."""
        self._templates[template_id] = bytes(template)

    def delete(self, template_id: str) -> bool:
        """Remove ``template_id`` if present. Deleting an absent id is not an error.

        Returns whether anything was removed.
        """
        return self._templates.pop(template_id, None) is not None

    def get(self, template_id: str) -> Optional[bytes]:
        return self._templates.get(template_id)

    def ids(self) -> List[str]:
        return list(self._templates.keys())

    def items(self) -> Iterator:
        return iter(self._templates.items())

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)


def finalize(
    engine: IdentInterface,
    config_dir: Path,
    enrollment_dir: Path,
    edb_path: Path,
    manifest_path: Path,
    gallery_type: GalleryType = GalleryType.UNCONSOLIDATED,
) -> None:
    """Hand the merged EDB + manifest to the engine. Any failure is fatal."""
    for path in (edb_path, manifest_path):
        if not Path(path).is_file():
            raise InputFileError(path, "EDB and/or manifest file is missing")
    LOGGER.info(
        "Finalizing %s gallery from %s + %s into %s",
        gallery_type.value,
        edb_path,
        manifest_path,
        enrollment_dir,
    )
    status = engine.finalize_enrollment(
        Path(config_dir), Path(enrollment_dir), Path(edb_path), Path(manifest_path), gallery_type
    )
    if not status.ok:
        raise StageError("finalizeEnrollment", status)


def initialize_identification(engine: IdentInterface, config_dir: Path, enrollment_dir: Path) -> None:
    """Have the engine load the finalized gallery. Any failure is fatal."""
    status = engine.initialize_identification(Path(config_dir), Path(enrollment_dir))
    if not status.ok:
        raise StageError("initializeIdentification", status)
    LOGGER.info("Identification initialized from %s", enrollment_dir)
