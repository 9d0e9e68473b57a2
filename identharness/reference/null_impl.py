"""Null engine used to validate the harness plumbing end to end.

Templates are a fixed text string, eye coordinates are synthetic, and search
cycles through the gallery ids with descending integer scores.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from identharness.gallery.store import GalleryStore
from identharness.interface import IdentInterface
from identharness.types import (
    SUCCESS,
    Candidate,
    EyePair,
    GalleryType,
    Multiface,
    ReturnCode,
    ReturnStatus,
    TemplateRole,
)

LOGGER = logging.getLogger("identharness.reference.null")

TEMPLATE_TEXT = "Somewhere out there, beneath the pale moon light\n"


class NullImplementation(IdentInterface):
    edb_name = "mei.edb"
    manifest_name = "mei.manifest"

    def __init__(self) -> None:
        self.gallery: Optional[GalleryStore] = None

    def initialize_template_creation(self, config_dir: Path, role: TemplateRole) -> ReturnStatus:
        return SUCCESS

    def create_template(self, faces: Multiface, role: TemplateRole) -> Tuple[ReturnStatus, bytes, List[EyePair]]:
        template = f"{len(faces)} {TEMPLATE_TEXT}".encode("utf-8")
        eyes = [EyePair(True, True, i, i, i + 1, i + 1) for i in range(len(faces))]
        return SUCCESS, template, eyes

    def finalize_enrollment(
        self,
        config_dir: Path,
        enrollment_dir: Path,
        edb_path: Path,
        manifest_path: Path,
        gallery_type: GalleryType,
    ) -> ReturnStatus:
        try:
            shutil.copyfile(edb_path, Path(enrollment_dir) / self.edb_name)
            shutil.copyfile(manifest_path, Path(enrollment_dir) / self.manifest_name)
        except OSError as exc:
            return ReturnStatus(ReturnCode.ENROLL_DIR_ERROR, str(exc))
        return SUCCESS

    def initialize_identification(self, config_dir: Path, enrollment_dir: Path) -> ReturnStatus:
        edb = Path(enrollment_dir) / self.edb_name
        manifest = Path(enrollment_dir) / self.manifest_name
        if not (edb.is_file() and manifest.is_file()):
            return ReturnStatus(ReturnCode.CONFIG_ERROR, f"missing {edb} or {manifest}")
        self.gallery = GalleryStore.load(edb, manifest)
        return SUCCESS

    def identify_template(self, template: bytes, candidate_list_length: int) -> Tuple[ReturnStatus, List[Candidate], bool]:
        ids = self.gallery.ids() if self.gallery is not None else []
        if not ids:
            return SUCCESS, [Candidate() for _ in range(candidate_list_length)], False
        candidates = [
            Candidate(True, ids[i % len(ids)], float(candidate_list_length - i))
            for i in range(candidate_list_length)
        ]
        return SUCCESS, candidates, True

    def gallery_insert_id(self, template: bytes, template_id: str) -> ReturnStatus:
        if self.gallery is None:
            self.gallery = GalleryStore()
        self.gallery.insert(template, template_id)
        return SUCCESS

    def gallery_delete_id(self, template_id: str) -> ReturnStatus:
        if self.gallery is not None:
            self.gallery.delete(template_id)
        return SUCCESS
