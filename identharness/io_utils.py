"""I/O helpers shared across CLI entrypoints and pipeline stages."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import yaml
from PIL import Image as PILImage, UnidentifiedImageError

from identharness.errors import InputFileError
from identharness.types import Image, ImageLabel

LOGGER = logging.getLogger("identharness.io")


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
    LOGGER.debug("Loaded YAML config %s -> keys=%s", path, list(data.keys()))
    return data


def setup_logging(level: int = logging.INFO) -> None:
    """Configure application logging if not already configured."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def read_image(path: Path, label: ImageLabel = ImageLabel.UNKNOWN) -> Image:
    """Decode an image into an 8-bit grey or 24-bit RGB raster.

    Any Pillow-readable format works; the validation sets ship PPM/PGM.
    """
    try:
        with PILImage.open(path) as raw:
            if raw.mode == "L":
                pixels = np.asarray(raw, dtype=np.uint8)
                depth = 8
            else:
                pixels = np.asarray(raw.convert("RGB"), dtype=np.uint8)
                depth = 24
    except (OSError, UnidentifiedImageError) as exc:
        raise InputFileError(path, f"cannot load image ({exc})") from exc
    height, width = pixels.shape[:2]
    return Image(width=width, height=height, depth=depth, data=pixels, label=label, path=Path(path))


def remove_file(path: Path) -> None:
    """Delete a consumed input file; failure is logged, never raised."""
    try:
        path.unlink()
    except OSError as exc:
        LOGGER.error("Error deleting file %s: %s", path, exc)


def resolve_path(path: Optional[str], base_dir: Optional[Path] = None) -> Optional[Path]:
    if path is None:
        return None
    p = Path(path)
    if not p.is_absolute() and base_dir is not None and not p.exists():
        p = base_dir / p
    return p
