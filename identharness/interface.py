"""Interface an identification engine must implement to be driven by the harness."""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Tuple

from identharness.errors import ImplementationLoadError
from identharness.types import Candidate, EyePair, GalleryType, Multiface, ReturnStatus, TemplateRole

LOGGER = logging.getLogger("identharness.interface")


class IdentInterface(ABC):
    """1:N template creation and search engine.

    Every method reports its outcome as a ``ReturnStatus``; the harness
    decides which failures are fatal and which are recorded per record.
    """

    @abstractmethod
    def initialize_template_creation(self, config_dir: Path, role: TemplateRole) -> ReturnStatus:
        """Prepare template creation for ``role``; called once before any worker starts."""

    @abstractmethod
    def create_template(
        self,
        faces: Multiface,
        role: TemplateRole,
    ) -> Tuple[ReturnStatus, bytes, List[EyePair]]:
        """Return a template and one ``EyePair`` per input image."""

    @abstractmethod
    def finalize_enrollment(
        self,
        config_dir: Path,
        enrollment_dir: Path,
        edb_path: Path,
        manifest_path: Path,
        gallery_type: GalleryType,
    ) -> ReturnStatus:
        """Consume the merged EDB + manifest and write whatever the engine needs into ``enrollment_dir``."""

    @abstractmethod
    def initialize_identification(self, config_dir: Path, enrollment_dir: Path) -> ReturnStatus:
        """Load the finalized gallery for searching."""

    @abstractmethod
    def identify_template(
        self,
        template: bytes,
        candidate_list_length: int,
    ) -> Tuple[ReturnStatus, List[Candidate], bool]:
        """Search the gallery; candidates must already be sorted by descending score."""

    @abstractmethod
    def gallery_insert_id(self, template: bytes, template_id: str) -> ReturnStatus:
        ...

    @abstractmethod
    def gallery_delete_id(self, template_id: str) -> ReturnStatus:
        ...


def load_implementation(spec: str) -> IdentInterface:
    """Instantiate an engine from a ``package.module:attribute`` spec.

    ``attribute`` may be a class or a zero-argument factory.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ImplementationLoadError(f"Implementation spec must look like 'module:attribute', got {spec!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ImplementationLoadError(f"Unable to import implementation module {module_name!r}: {exc}") from exc
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ImplementationLoadError(f"Module {module_name!r} has no attribute {attr!r}") from exc
    if not callable(factory):
        raise ImplementationLoadError(f"{spec} is not a class or factory")
    try:
        engine = factory()
    except Exception as exc:
        raise ImplementationLoadError(f"{spec} failed to construct an engine: {exc}") from exc
    if not isinstance(engine, IdentInterface):
        raise ImplementationLoadError(
            f"{spec} produced {type(engine).__name__}, which does not implement IdentInterface"
        )
    LOGGER.info("Loaded implementation %s (%s)", spec, type(engine).__name__)
    return engine
