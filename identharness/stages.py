"""Pipeline stages: enroll, finalize, search and insert.

Shard-level functions (``enroll_shard``, ``search_shard``) run inside one
worker and touch only files carrying that worker's shard index. The
``run_*`` functions are the controller side: they initialize the engine once,
partition the input and fan out through ``identharness.pool``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from tqdm import tqdm

from identharness.config import HarnessConfig
from identharness.gallery.edb import EnrollmentDatabaseWriter, merge_enrollment_shards, shard_pairs
from identharness.gallery.store import finalize, initialize_identification
from identharness.interface import IdentInterface
from identharness.io_utils import ensure_dir, remove_file
from identharness.partition import split_input_file
from identharness.pool import PoolResult, run_sharded
from identharness.results import CandidateListLog, EnrollmentLog
from identharness.search import identify
from identharness.templates import (
    create_template,
    initialize_template_creation,
    iter_input_records,
    load_faces,
)
from identharness.types import ReturnCode, ReturnStatus, TemplateRole

LOGGER = logging.getLogger("identharness.stages")


@dataclass
class OutputLayout:
    """File naming for one run; every per-shard name ends in the shard index."""

    output_dir: Path
    stem: str = "stem"
    edb_name: str = "edb"
    manifest_name: str = "manifest"

    def enroll_log(self, index: int) -> Path:
        return self.output_dir / f"{self.stem}.enroll.{index}"

    def search_log(self, index: int) -> Path:
        return self.output_dir / f"{self.stem}.search.{index}"

    def insert_log(self) -> Path:
        return self.output_dir / f"{self.stem}.insert"

    def shard_edb(self, index: int) -> Path:
        return self.output_dir / f"{self.edb_name}.{index}"

    def shard_manifest(self, index: int) -> Path:
        return self.output_dir / f"{self.manifest_name}.{index}"

    @property
    def edb(self) -> Path:
        return self.output_dir / self.edb_name

    @property
    def manifest(self) -> Path:
        return self.output_dir / self.manifest_name


def enroll_shard(
    engine: IdentInterface,
    shard_path: Path,
    log_path: Path,
    edb_path: Path,
    manifest_path: Path,
    progress: bool = False,
    remove_input: bool = True,
    base_dir: Optional[Path] = None,
) -> int:
    """Create enrollment templates for every record in one shard.

    Every record lands in the EDB and manifest, including failed extractions,
    so the gallery stays index-complete. Relative image paths resolve against
    ``base_dir``, the directory of the unsharded input. Returns the number of
    records.
    """
    records = 0
    failures = 0
    with EnrollmentLog(log_path) as log, EnrollmentDatabaseWriter(edb_path, manifest_path) as edb:
        for record in tqdm(iter_input_records(shard_path, base_dir), desc=shard_path.name, unit="rec", disable=not progress):
            faces = load_faces(record)
            result = create_template(engine, faces, TemplateRole.ENROLLMENT_1N, record.record_id)
            edb.append(record.record_id, result.template)
            log.write_record(record.record_id, record.image_paths, len(result.template), result.status, result.eyes)
            records += 1
            if not result.status.ok:
                failures += 1
    LOGGER.info(
        "Enrolled %d records from %s (%d extraction failures, %d EDB bytes)",
        records,
        shard_path,
        failures,
        edb.cursor,
    )
    if remove_input:
        remove_file(shard_path)
    return records


def search_shard(
    engine: IdentInterface,
    shard_path: Path,
    candidate_log_path: Path,
    candidate_list_length: int,
    progress: bool = False,
    remove_input: bool = True,
    base_dir: Optional[Path] = None,
) -> int:
    """Search every probe in one shard, logging exactly k rows per probe."""
    probes = 0
    with CandidateListLog(candidate_log_path) as log:
        for record in tqdm(iter_input_records(shard_path, base_dir), desc=shard_path.name, unit="probe", disable=not progress):
            faces = load_faces(record)
            created = create_template(engine, faces, TemplateRole.SEARCH_1N, record.record_id)
            result = identify(engine, created.template, candidate_list_length, created.status)
            log.write_result(record.record_id, result)
            probes += 1
    LOGGER.info("Searched %d probes from %s", probes, shard_path)
    if remove_input:
        remove_file(shard_path)
    return probes


def insert_and_search(
    engine: IdentInterface,
    input_path: Path,
    candidate_log_path: Path,
    candidate_list_length: int,
    with_delete: bool = False,
) -> int:
    """Grow the live gallery one id at a time, re-searching a fixed probe after each change.

    The first record is the probe (search role); the remaining records are
    inserted in order (enrollment role). Searches after the ``i``-th insert are
    logged as ``<probe>.<i>``; with ``with_delete`` the inserted ids are then
    deleted in order and searches are logged as ``<probe>.d<i>``. An insert or
    delete that fails or raises is logged as a warning and the flow continues.
    Returns the number of searches logged.
    """
    records = list(iter_input_records(input_path))
    if not records:
        LOGGER.warning("Insert input %s has no records", input_path)
        with CandidateListLog(candidate_log_path):
            return 0

    probe_record, gallery_records = records[0], records[1:]
    probe = create_template(engine, load_faces(probe_record), TemplateRole.SEARCH_1N, probe_record.record_id)
    inserts = [
        (record.record_id, create_template(engine, load_faces(record), TemplateRole.ENROLLMENT_1N, record.record_id))
        for record in gallery_records
    ]

    searches = 0
    with CandidateListLog(candidate_log_path) as log:
        for i, (template_id, created) in enumerate(inserts, start=1):
            _mutate("galleryInsertID", template_id, lambda: engine.gallery_insert_id(created.template, template_id))
            result = identify(engine, probe.template, candidate_list_length, probe.status)
            log.write_result(f"{probe_record.record_id}.{i}", result)
            searches += 1
        if with_delete:
            for i, (template_id, _) in enumerate(inserts, start=1):
                _mutate("galleryDeleteID", template_id, lambda: engine.gallery_delete_id(template_id))
                result = identify(engine, probe.template, candidate_list_length, probe.status)
                log.write_result(f"{probe_record.record_id}.d{i}", result)
                searches += 1
    LOGGER.info("Logged %d searches for probe %s", searches, probe_record.record_id)
    return searches


def _mutate(operation: str, template_id: str, call: Callable[[], ReturnStatus]) -> ReturnStatus:
    """Run one gallery mutation; failures are logged and the flow continues."""
    try:
        status = call()
    except Exception as exc:  # noqa: BLE001 - recorded per mutation
        status = ReturnStatus(ReturnCode.VENDOR_ERROR, str(exc))
    if not status.ok:
        LOGGER.warning("%s(%s) returned %s", operation, template_id, status)
    return status


def run_enroll(
    engine: IdentInterface,
    config: HarnessConfig,
    config_dir: Path,
    input_file: Path,
    layout: OutputLayout,
    num_forks: int,
) -> PoolResult:
    initialize_template_creation(engine, config_dir, TemplateRole.ENROLLMENT_1N)
    ensure_dir(layout.output_dir)
    shards = split_input_file(input_file, layout.output_dir, num_forks)

    def task(index: int) -> None:
        enroll_shard(
            engine,
            shards[index],
            layout.enroll_log(index),
            layout.shard_edb(index),
            layout.shard_manifest(index),
            progress=config.progress,
            remove_input=not config.keep_shard_inputs,
            base_dir=Path(input_file).parent,
        )

    return run_sharded(task, len(shards))


def run_search(
    engine: IdentInterface,
    config: HarnessConfig,
    config_dir: Path,
    enroll_dir: Path,
    input_file: Path,
    layout: OutputLayout,
    num_forks: int,
) -> PoolResult:
    initialize_template_creation(engine, config_dir, TemplateRole.SEARCH_1N)
    initialize_identification(engine, config_dir, enroll_dir)
    ensure_dir(layout.output_dir)
    shards = split_input_file(input_file, layout.output_dir, num_forks)

    def task(index: int) -> None:
        search_shard(
            engine,
            shards[index],
            layout.search_log(index),
            config.candidate_list_length,
            progress=config.progress,
            remove_input=not config.keep_shard_inputs,
            base_dir=Path(input_file).parent,
        )

    return run_sharded(task, len(shards))


def run_finalize(
    engine: IdentInterface,
    config: HarnessConfig,
    config_dir: Path,
    enroll_dir: Path,
    layout: OutputLayout,
) -> None:
    ensure_dir(enroll_dir)
    finalize(engine, config_dir, enroll_dir, layout.edb, layout.manifest, config.gallery_type)
    LOGGER.info("Finalized gallery in %s", enroll_dir)


def run_insert(
    engine: IdentInterface,
    config: HarnessConfig,
    config_dir: Path,
    enroll_dir: Path,
    input_file: Path,
    layout: OutputLayout,
) -> int:
    initialize_template_creation(engine, config_dir, TemplateRole.SEARCH_1N)
    initialize_identification(engine, config_dir, enroll_dir)
    ensure_dir(layout.output_dir)
    return insert_and_search(
        engine,
        input_file,
        layout.insert_log(),
        config.candidate_list_length,
        with_delete=config.insert_with_delete,
    )


def run_merge(layout: OutputLayout, num_shards: Optional[int] = None) -> int:
    """Merge ``edb.<i>``/``manifest.<i>`` shard pairs into the files finalize reads."""
    pairs = shard_pairs(layout.output_dir, num_shards, layout.edb_name, layout.manifest_name)
    if not pairs:
        LOGGER.warning("No EDB shards found under %s", layout.output_dir)
    entries = merge_enrollment_shards(pairs, layout.edb, layout.manifest)
    LOGGER.info("Merged %d shards into %s (%d templates)", len(pairs), layout.edb, len(entries))
    return len(entries)


def candidate_logs(layout: OutputLayout) -> List[Path]:
    """Search logs for every shard present in the output directory, in shard order."""
    prefix = f"{layout.stem}.search."
    found = [
        p
        for p in layout.output_dir.glob(f"{prefix}*")
        if p.name[len(prefix):].isdigit()
    ]
    return sorted(found, key=lambda p: int(p.name[len(prefix):]))
