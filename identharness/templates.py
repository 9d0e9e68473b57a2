"""Template creation: input parsing, engine calls, and the eye-count contract."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from identharness.errors import InputFileError, InputFormatError, ProtocolError, StageError
from identharness.interface import IdentInterface
from identharness.io_utils import read_image, resolve_path
from identharness.types import (
    EyePair,
    ImageLabel,
    InputRecord,
    Multiface,
    ReturnCode,
    ReturnStatus,
    TemplateRole,
)

LOGGER = logging.getLogger("identharness.templates")


@dataclass
class TemplateResult:
    status: ReturnStatus
    template: bytes = b""
    eyes: List[EyePair] = field(default_factory=list)


def parse_input_line(line: str, path: Path, line_number: int, base_dir: Optional[Path] = None) -> InputRecord:
    """Parse ``<id> <image> <label> [<image> <label> ...]``.

    Relative image paths that do not exist as given resolve against
    ``base_dir``, which defaults to the directory holding ``path``.
    """
    tokens = line.split()
    if not tokens:
        raise InputFormatError(path, line_number, "empty record")
    record_id, rest = tokens[0], tokens[1:]
    if not rest or len(rest) % 2:
        raise InputFormatError(
            path,
            line_number,
            f"record {record_id!r} must be followed by <image> <label> pairs, got {len(rest)} tokens",
        )
    if base_dir is None:
        base_dir = path.parent
    images: List[Tuple[Path, ImageLabel]] = []
    for image_token, label_token in zip(rest[0::2], rest[1::2]):
        images.append((resolve_path(image_token, base_dir), ImageLabel.parse(label_token)))
    return InputRecord(record_id=record_id, images=images, line_number=line_number)


def iter_input_records(path: Path, base_dir: Optional[Path] = None) -> Iterator[InputRecord]:
    """Yield records in file order; blank lines are skipped."""
    path = Path(path)
    try:
        fh = path.open("r", encoding="utf-8")
    except OSError as exc:
        raise InputFileError(path, str(exc)) from exc
    with fh:
        for line_number, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            yield parse_input_line(line, path, line_number, base_dir)


def load_faces(record: InputRecord) -> Multiface:
    return [read_image(image_path, label) for image_path, label in record.images]


def initialize_template_creation(engine: IdentInterface, config_dir: Path, role: TemplateRole) -> None:
    """Initialize ``role`` once in the controlling process, before any fork."""
    status = engine.initialize_template_creation(Path(config_dir), role)
    if not status.ok:
        raise StageError(f"initializeTemplateCreation({role.name})", status)
    LOGGER.info("Template creation initialized for %s", role.name)


def create_template(engine: IdentInterface, faces: Multiface, role: TemplateRole, record_id: str = "") -> TemplateResult:
    """Run the engine's extractor over one record.

    A non-success status is a tolerated per-record failure. A successful call
    that returns a different number of eye pairs than images is a contract
    violation and raises ``ProtocolError``.
    """
    try:
        status, template, eyes = engine.create_template(faces, role)
    except Exception as exc:  # noqa: BLE001 - recorded per record
        LOGGER.warning("createTemplate raised for %s: %s", record_id or "<record>", exc)
        return TemplateResult(ReturnStatus(ReturnCode.VENDOR_ERROR, str(exc)), b"", _unassigned(len(faces)))

    template = bytes(template or b"")
    eyes = list(eyes or [])
    if status.ok:
        if len(eyes) != len(faces):
            raise ProtocolError(
                f"Error processing input ID {record_id}: the number of eye coordinates returned "
                f"({len(eyes)}) does not match the number of input images ({len(faces)})"
            )
    else:
        LOGGER.debug("createTemplate(%s) for %s returned %s", role.name, record_id, status)
        eyes = (eyes + _unassigned(len(faces)))[: len(faces)]
    return TemplateResult(status, template, eyes)


def _unassigned(count: int) -> List[EyePair]:
    return [EyePair() for _ in range(count)]
