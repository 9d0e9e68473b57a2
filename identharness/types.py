"""Common dataclasses, enums and type aliases used across the identharness package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np


class ReturnCode(IntEnum):
    """Status codes returned by an identification engine.

    The integer value is what lands in the enrollment and candidate-list logs.
    """

    SUCCESS = 0
    CONFIG_ERROR = 1
    REFUSE_INPUT = 2
    EXTRACT_ERROR = 3
    PARSE_ERROR = 4
    TEMPLATE_CREATION_ERROR = 5
    VERIF_TEMPLATE_ERROR = 6
    FACE_DETECTION_ERROR = 7
    NUM_DATA_ERROR = 8
    TEMPLATE_FORMAT_ERROR = 9
    ENROLL_DIR_ERROR = 10
    INPUT_LOCATION_ERROR = 11
    MEMORY_ERROR = 12
    NOT_IMPLEMENTED = 13
    VENDOR_ERROR = 14

    @property
    def description(self) -> str:
        return _RETURN_CODE_DESCRIPTIONS.get(self, "Undefined error")


_RETURN_CODE_DESCRIPTIONS = {
    ReturnCode.SUCCESS: "Success",
    ReturnCode.CONFIG_ERROR: "Error reading configuration files",
    ReturnCode.REFUSE_INPUT: "Elective refusal to process the input",
    ReturnCode.EXTRACT_ERROR: "Involuntary failure to process the image",
    ReturnCode.PARSE_ERROR: "Cannot parse the input data",
    ReturnCode.TEMPLATE_CREATION_ERROR: "Elective refusal to produce a template",
    ReturnCode.VERIF_TEMPLATE_ERROR: "Input template was the result of failed feature extraction",
    ReturnCode.FACE_DETECTION_ERROR: "Unable to detect a face in the image",
    ReturnCode.NUM_DATA_ERROR: "Number of input images not supported",
    ReturnCode.TEMPLATE_FORMAT_ERROR: "Template file is an incorrect format or defective",
    ReturnCode.ENROLL_DIR_ERROR: "An operation on the enrollment directory failed",
    ReturnCode.INPUT_LOCATION_ERROR: "Cannot locate the input data",
    ReturnCode.MEMORY_ERROR: "Memory allocation failed",
    ReturnCode.NOT_IMPLEMENTED: "Function is not implemented",
    ReturnCode.VENDOR_ERROR: "Vendor-defined error",
}


@dataclass(frozen=True)
class ReturnStatus:
    """Status code plus an optional free-form message from the engine."""

    code: ReturnCode = ReturnCode.SUCCESS
    info: str = ""

    @property
    def ok(self) -> bool:
        return self.code == ReturnCode.SUCCESS

    def __str__(self) -> str:
        if self.info:
            return f"{self.code.name} ({self.code.description}): {self.info}"
        return f"{self.code.name} ({self.code.description})"


SUCCESS = ReturnStatus(ReturnCode.SUCCESS)


class TemplateRole(Enum):
    ENROLLMENT_1N = "enrollment_1n"
    SEARCH_1N = "search_1n"


class GalleryType(Enum):
    """Gallery composition tag, handed to the engine untouched."""

    CONSOLIDATED = "consolidated"
    UNCONSOLIDATED = "unconsolidated"

    @classmethod
    def parse(cls, value: str) -> "GalleryType":
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown gallery type {value!r}; expected one of: {choices}") from exc


class ImageLabel(Enum):
    UNKNOWN = "UNKNOWN"
    ISO = "ISO"
    MUGSHOT = "MUGSHOT"
    PHOTOJOURNALISM = "PHOTOJOURNALISM"
    EXPLOITATION = "EXPLOITATION"
    WILD = "WILD"

    @classmethod
    def parse(cls, value: str) -> "ImageLabel":
        # Unrecognized descriptions fall back to UNKNOWN.
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class Image:
    """Decoded raster handed to the engine.

    ``data`` is HxW (depth 8) or HxWx3 (depth 24) uint8.
    """

    width: int
    height: int
    depth: int
    data: np.ndarray
    label: ImageLabel = ImageLabel.UNKNOWN
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        return self.width * self.height * (self.depth // 8)


Multiface = List[Image]


@dataclass
class EyePair:
    is_left_assigned: bool = False
    is_right_assigned: bool = False
    xleft: int = 0
    yleft: int = 0
    xright: int = 0
    yright: int = 0


@dataclass
class Candidate:
    """One ranked entry of a candidate list."""

    is_assigned: bool = False
    template_id: str = ""
    similarity_score: float = 0.0


@dataclass
class ManifestEntry:
    """Location of one template inside the EDB."""

    template_id: str
    size: int
    offset: int

    @property
    def end(self) -> int:
        return self.offset + self.size

    def to_line(self) -> str:
        return f"{self.template_id} {self.size} {self.offset}\n"


@dataclass
class InputRecord:
    """One line of an input file: an id and the images that belong to it."""

    record_id: str
    images: List[Tuple[Path, ImageLabel]] = field(default_factory=list)
    line_number: int = 0

    @property
    def image_paths(self) -> List[Path]:
        return [path for path, _ in self.images]


def l2_normalize(vec: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """L2-normalize the input vector."""
    norm = np.linalg.norm(vec)
    if norm < eps:
        return vec
    return vec / norm
