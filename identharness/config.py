"""Harness run configuration.

Values come from three layers: dataclass defaults, an optional YAML file
(``configs/harness.yaml`` by default) and CLI overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from identharness.errors import InputFileError
from identharness.io_utils import load_yaml
from identharness.types import GalleryType

LOGGER = logging.getLogger("identharness.config")

DEFAULT_CONFIG_PATH = Path("configs/harness.yaml")
DEFAULT_IMPLEMENTATION = "identharness.reference.null_impl:NullImplementation"


@dataclass
class HarnessConfig:
    candidate_list_length: int = 20
    gallery_type: GalleryType = GalleryType.UNCONSOLIDATED
    implementation: str = DEFAULT_IMPLEMENTATION
    keep_shard_inputs: bool = False
    insert_with_delete: bool = False
    progress: bool = False
    edb_name: str = "edb"
    manifest_name: str = "manifest"

    def __post_init__(self) -> None:
        if isinstance(self.gallery_type, str):
            self.gallery_type = GalleryType.parse(self.gallery_type)
        self.candidate_list_length = int(self.candidate_list_length)
        if self.candidate_list_length < 1:
            raise ValueError(f"candidate_list_length must be positive, got {self.candidate_list_length}")

    def with_overrides(self, **overrides: Any) -> "HarnessConfig":
        """Return a copy with every non-None override applied."""
        applied = {key: value for key, value in overrides.items() if value is not None}
        if not applied:
            return self
        return replace(self, **applied)


def load_config(path: Optional[Path] = None) -> HarnessConfig:
    """Read a harness YAML file; a missing default file yields plain defaults."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
        if not path.exists():
            LOGGER.debug("No harness config at %s; using defaults", path)
            return HarnessConfig()
    try:
        data = load_yaml(path)
    except OSError as exc:
        raise InputFileError(path, str(exc)) from exc
    except yaml.YAMLError as exc:
        raise InputFileError(path, f"invalid YAML ({exc})") from exc
    known = {f.name for f in fields(HarnessConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        LOGGER.warning("Ignoring unknown harness config keys in %s: %s", path, unknown)
    values: Dict[str, Any] = {key: value for key, value in data.items() if key in known}
    return HarnessConfig(**values)
