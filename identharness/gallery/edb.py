"""Enrolled-template database (EDB) and manifest read/write.

The EDB is a raw concatenation of template bytes. The manifest is a text index
with one ``<id> <size> <offset>`` line per template, in write order, where
``offset`` is the EDB length just before that template was appended.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple

from identharness.errors import InputFileError, TemplateStoreError
from identharness.types import ManifestEntry

LOGGER = logging.getLogger("identharness.gallery.edb")


class EnrollmentDatabaseWriter:
    """Append-only writer for one shard's EDB + manifest pair."""

    def __init__(self, edb_path: Path, manifest_path: Path) -> None:
        self.edb_path = Path(edb_path)
        self.manifest_path = Path(manifest_path)
        self._edb: Optional[BinaryIO] = None
        self._manifest: Optional[TextIO] = None
        self._cursor = 0
        self.entries: List[ManifestEntry] = []

    def open(self) -> "EnrollmentDatabaseWriter":
        try:
            self._edb = self.edb_path.open("wb")
        except OSError as exc:
            raise InputFileError(self.edb_path, str(exc)) from exc
        try:
            self._manifest = self.manifest_path.open("w", encoding="utf-8", newline="\n")
        except OSError as exc:
            self._edb.close()
            raise InputFileError(self.manifest_path, str(exc)) from exc
        self._cursor = 0
        return self

    def close(self) -> None:
        for handle in (self._edb, self._manifest):
            if handle is not None:
                handle.close()
        self._edb = None
        self._manifest = None

    def __enter__(self) -> "EnrollmentDatabaseWriter":
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def cursor(self) -> int:
        return self._cursor

    def append(self, template_id: str, template: bytes) -> ManifestEntry:
        """Write ``template`` to the EDB and its index line to the manifest."""
        if self._edb is None or self._manifest is None:
            raise RuntimeError("EnrollmentDatabaseWriter is not open")
        _check_template_id(template_id)
        entry = ManifestEntry(template_id=template_id, size=len(template), offset=self._cursor)
        self._manifest.write(entry.to_line())
        self._edb.write(template)
        self._cursor += entry.size
        self.entries.append(entry)
        return entry

    def copy_from(self, src: BinaryIO, entries: Sequence[ManifestEntry], chunk_size: int = 1 << 20) -> None:
        """Append another EDB stream verbatim, rebasing its ``entries`` onto the cursor."""
        if self._edb is None or self._manifest is None:
            raise RuntimeError("EnrollmentDatabaseWriter is not open")
        base = self._cursor
        while True:
            chunk = src.read(chunk_size)
            if not chunk:
                break
            self._edb.write(chunk)
            self._cursor += len(chunk)
        for entry in entries:
            rebased = ManifestEntry(entry.template_id, entry.size, entry.offset + base)
            self._manifest.write(rebased.to_line())
            self.entries.append(rebased)


def _check_template_id(template_id: str) -> None:
    if not template_id or any(ch.isspace() for ch in template_id):
        raise TemplateStoreError(f"Template id {template_id!r} cannot be stored in a whitespace-delimited manifest")


def parse_manifest_line(line: str, path: Path, line_number: int) -> ManifestEntry:
    tokens = line.split()
    if len(tokens) != 3:
        raise TemplateStoreError(f"{path}:{line_number}: expected '<id> <size> <offset>', got {line.rstrip()!r}")
    template_id, size, offset = tokens
    try:
        entry = ManifestEntry(template_id=template_id, size=int(size), offset=int(offset))
    except ValueError as exc:
        raise TemplateStoreError(f"{path}:{line_number}: non-integer size/offset in {line.rstrip()!r}") from exc
    if entry.size < 0 or entry.offset < 0:
        raise TemplateStoreError(f"{path}:{line_number}: negative size/offset in {line.rstrip()!r}")
    return entry


def iter_manifest(path: Path) -> Iterator[ManifestEntry]:
    try:
        fh = Path(path).open("r", encoding="utf-8")
    except OSError as exc:
        raise InputFileError(path, str(exc)) from exc
    with fh:
        for line_number, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            yield parse_manifest_line(line, Path(path), line_number)


def read_manifest(path: Path) -> List[ManifestEntry]:
    return list(iter_manifest(path))


def read_edb_entries(edb_path: Path, manifest_path: Path) -> Iterator[Tuple[ManifestEntry, bytes]]:
    """Yield each manifest entry with the bytes it points at, seeking per entry."""
    edb_path = Path(edb_path)
    try:
        edb = edb_path.open("rb")
    except OSError as exc:
        raise InputFileError(edb_path, str(exc)) from exc
    with edb:
        for entry in iter_manifest(manifest_path):
            edb.seek(entry.offset)
            data = edb.read(entry.size)
            if len(data) != entry.size:
                raise TemplateStoreError(
                    f"EDB {edb_path} truncated: {entry.template_id} wants {entry.size} bytes "
                    f"at offset {entry.offset}, got {len(data)}"
                )
            yield entry, data


def load_templates(edb_path: Path, manifest_path: Path) -> Dict[str, bytes]:
    """Materialize an id -> template mapping; a repeated id keeps its last template."""
    templates: Dict[str, bytes] = {}
    for entry, data in read_edb_entries(edb_path, manifest_path):
        if entry.template_id in templates:
            LOGGER.debug("Duplicate template id %s in %s; later entry wins", entry.template_id, manifest_path)
        templates[entry.template_id] = data
    return templates


def validate_enrollment_database(edb_path: Path, manifest_path: Path) -> List[ManifestEntry]:
    """Check that offsets are running prefix sums and the sizes cover the EDB exactly."""
    edb_path = Path(edb_path)
    entries = read_manifest(manifest_path)
    expected_offset = 0
    for entry in entries:
        if entry.offset != expected_offset:
            raise TemplateStoreError(
                f"{manifest_path}: {entry.template_id} has offset {entry.offset}, expected {expected_offset}"
            )
        expected_offset += entry.size
    try:
        edb_size = edb_path.stat().st_size
    except OSError as exc:
        raise InputFileError(edb_path, str(exc)) from exc
    if edb_size != expected_offset:
        raise TemplateStoreError(
            f"{edb_path} is {edb_size} bytes but {manifest_path} accounts for {expected_offset}"
        )
    return entries


def merge_enrollment_shards(
    shards: Sequence[Tuple[Path, Path]],
    edb_out: Path,
    manifest_out: Path,
    chunk_size: int = 1 << 20,
) -> List[ManifestEntry]:
    """Concatenate shard ``(edb, manifest)`` pairs in order, rebasing offsets."""
    with EnrollmentDatabaseWriter(edb_out, manifest_out) as writer:
        for shard_edb, shard_manifest in shards:
            entries = validate_enrollment_database(shard_edb, shard_manifest)
            base = writer.cursor
            try:
                src = Path(shard_edb).open("rb")
            except OSError as exc:
                raise InputFileError(shard_edb, str(exc)) from exc
            with src:
                writer.copy_from(src, entries, chunk_size)
            LOGGER.info("Merged %s (%d templates) at base offset %d", shard_manifest, len(entries), base)
    return list(writer.entries)


def shard_pairs(
    output_dir: Path,
    count: Optional[int] = None,
    edb_name: str = "edb",
    manifest_name: str = "manifest",
) -> List[Tuple[Path, Path]]:
    """Find ``edb.<i>``/``manifest.<i>`` pairs under ``output_dir`` in shard order."""
    output_dir = Path(output_dir)
    if count is None:
        indices = sorted(
            int(p.suffix[1:])
            for p in output_dir.glob(f"{edb_name}.*")
            if p.suffix[1:].isdigit()
        )
    else:
        indices = list(range(count))
    return [(output_dir / f"{edb_name}.{i}", output_dir / f"{manifest_name}.{i}") for i in indices]

