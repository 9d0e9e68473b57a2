"""Cosine-similarity reference engine.

Features are a mean-centred, L2-normalized grey thumbnail of the input
images, so identical images always rank first. Good enough to exercise
ranking, decisions and gallery mutation without a real face model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import yaml
from PIL import Image as PILImage

from identharness.gallery.edb import load_templates
from identharness.gallery.store import GalleryStore
from identharness.interface import IdentInterface
from identharness.io_utils import load_yaml
from identharness.types import (
    SUCCESS,
    Candidate,
    EyePair,
    GalleryType,
    Image,
    Multiface,
    ReturnCode,
    ReturnStatus,
    TemplateRole,
    l2_normalize,
)

LOGGER = logging.getLogger("identharness.reference.cosine")

CONFIG_NAME = "cosine.yaml"
GALLERY_NAME = "cosine_gallery.npz"


@dataclass
class CosineConfig:
    grid: int = 16
    decision_threshold: float = 0.9
    max_images: int = 8


class CosineImplementation(IdentInterface):
    def __init__(self) -> None:
        self.config = CosineConfig()
        self.gallery: Optional[GalleryStore] = None
        self._matrix: Optional[np.ndarray] = None
        self._matrix_ids: List[str] = []

    @property
    def feature_size(self) -> int:
        return self.config.grid * self.config.grid

    def _load_config(self, config_dir: Path) -> ReturnStatus:
        path = Path(config_dir) / CONFIG_NAME
        if not path.exists():
            return SUCCESS
        try:
            data = load_yaml(path)
            self.config = CosineConfig(**data)
        except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
            return ReturnStatus(ReturnCode.CONFIG_ERROR, f"{path}: {exc}")
        LOGGER.info("Cosine engine config: %s", self.config)
        return SUCCESS

    def initialize_template_creation(self, config_dir: Path, role: TemplateRole) -> ReturnStatus:
        return self._load_config(config_dir)

    def _embed(self, image: Image) -> np.ndarray:
        raster = PILImage.fromarray(image.data)
        thumb = raster.convert("L").resize((self.config.grid, self.config.grid), PILImage.BILINEAR)
        vec = np.asarray(thumb, dtype=np.float32).reshape(-1)
        return vec - vec.mean()

    def create_template(self, faces: Multiface, role: TemplateRole) -> Tuple[ReturnStatus, bytes, List[EyePair]]:
        eyes = [EyePair() for _ in faces]
        if not faces:
            return ReturnStatus(ReturnCode.NUM_DATA_ERROR, "no images"), b"", eyes
        if len(faces) > self.config.max_images:
            return ReturnStatus(ReturnCode.NUM_DATA_ERROR, f"{len(faces)} images > {self.config.max_images}"), b"", eyes
        if any(face.width == 0 or face.height == 0 for face in faces):
            return ReturnStatus(ReturnCode.EXTRACT_ERROR, "empty image"), b"", eyes

        feature = np.mean([self._embed(face) for face in faces], axis=0)
        if float(np.linalg.norm(feature)) < 1e-6:
            # Flat images carry no signal.
            return ReturnStatus(ReturnCode.EXTRACT_ERROR, "flat image"), b"", eyes
        feature = l2_normalize(feature).astype(np.float32)
        eyes = [
            EyePair(True, True, int(face.width * 0.3), int(face.height * 0.4), int(face.width * 0.7), int(face.height * 0.4))
            for face in faces
        ]
        return SUCCESS, feature.tobytes(), eyes

    def finalize_enrollment(
        self,
        config_dir: Path,
        enrollment_dir: Path,
        edb_path: Path,
        manifest_path: Path,
        gallery_type: GalleryType,
    ) -> ReturnStatus:
        status = self._load_config(config_dir)
        if not status.ok:
            return status
        templates = load_templates(edb_path, manifest_path)
        ids, features = self._stack(templates.items())
        try:
            np.savez(
                Path(enrollment_dir) / GALLERY_NAME,
                ids=np.asarray(ids, dtype=str),
                features=features,
                gallery_type=np.asarray(gallery_type.value),
            )
        except OSError as exc:
            return ReturnStatus(ReturnCode.ENROLL_DIR_ERROR, str(exc))
        LOGGER.info("Finalized %d usable templates of %d (%s)", len(ids), len(templates), gallery_type.value)
        return SUCCESS

    def initialize_identification(self, config_dir: Path, enrollment_dir: Path) -> ReturnStatus:
        status = self._load_config(config_dir)
        if not status.ok:
            return status
        path = Path(enrollment_dir) / GALLERY_NAME
        if not path.is_file():
            return ReturnStatus(ReturnCode.CONFIG_ERROR, f"missing {path}")
        with np.load(path) as data:
            ids = [str(value) for value in data["ids"]]
            features = np.asarray(data["features"], dtype=np.float32)
        self.gallery = GalleryStore({tid: row.tobytes() for tid, row in zip(ids, features)})
        self._matrix = None
        return SUCCESS

    def _stack(self, items) -> Tuple[List[str], np.ndarray]:
        ids: List[str] = []
        rows: List[np.ndarray] = []
        for template_id, template in items:
            # Failed enrollments are empty and can never match.
            if len(template) != self.feature_size * 4:
                continue
            ids.append(template_id)
            rows.append(np.frombuffer(template, dtype=np.float32))
        if not rows:
            return ids, np.empty((0, self.feature_size), dtype=np.float32)
        return ids, np.stack(rows, axis=0)

    def _search_matrix(self) -> Tuple[List[str], np.ndarray]:
        if self._matrix is None:
            items = self.gallery.items() if self.gallery is not None else iter(())
            self._matrix_ids, self._matrix = self._stack(items)
        return self._matrix_ids, self._matrix

    def identify_template(self, template: bytes, candidate_list_length: int) -> Tuple[ReturnStatus, List[Candidate], bool]:
        if len(template) != self.feature_size * 4:
            return ReturnStatus(ReturnCode.TEMPLATE_FORMAT_ERROR, f"template is {len(template)} bytes"), [], False
        probe = np.frombuffer(template, dtype=np.float32)
        ids, matrix = self._search_matrix()
        candidates: List[Candidate] = []
        if len(ids):
            scores = matrix @ probe
            order = np.argsort(-scores, kind="stable")[:candidate_list_length]
            candidates = [Candidate(True, ids[i], float(scores[i])) for i in order]
        decision = bool(candidates) and candidates[0].similarity_score >= self.config.decision_threshold
        candidates += [Candidate() for _ in range(candidate_list_length - len(candidates))]
        return SUCCESS, candidates, decision

    def gallery_insert_id(self, template: bytes, template_id: str) -> ReturnStatus:
        if self.gallery is None:
            self.gallery = GalleryStore()
        self.gallery.insert(template, template_id)
        self._matrix = None
        return SUCCESS

    def gallery_delete_id(self, template_id: str) -> ReturnStatus:
        if self.gallery is not None and self.gallery.delete(template_id):
            self._matrix = None
        return SUCCESS
