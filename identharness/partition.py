"""Split a line-oriented input file into contiguous, order-preserving shards."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import List

from identharness.errors import InputFileError

LOGGER = logging.getLogger("identharness.partition")

SHARD_STEM = "input.txt."


def shard_path(output_dir: Path, index: int) -> Path:
    return output_dir / f"{SHARD_STEM}{index}"


def count_lines(input_path: Path) -> int:
    """Count lines, including a final line without a trailing newline."""
    try:
        with input_path.open("rb") as fh:
            return sum(1 for _ in fh)
    except OSError as exc:
        raise InputFileError(input_path, str(exc)) from exc


def plan_shards(line_count: int, num_workers: int) -> List[int]:
    """Return the number of lines for each shard.

    The worker count is clamped to the line count and then recomputed from the
    rounded-up lines per worker. Lines are spread evenly over the resulting
    workers (earlier shards take the remainder), so 7 lines over 3 workers
    gives ``[3, 2, 2]`` and no shard is ever empty.
    """
    if num_workers < 1:
        raise ValueError(f"num_workers must be at least 1, got {num_workers}")
    if line_count == 0:
        return []
    workers = min(num_workers, line_count)
    lines_per_worker = math.ceil(line_count / workers)
    workers = math.ceil(line_count / lines_per_worker)
    base, extra = divmod(line_count, workers)
    return [base + 1 if index < extra else base for index in range(workers)]


def split_input_file(input_path: Path, output_dir: Path, num_workers: int) -> List[Path]:
    """Write ``input_path`` into per-worker shard files under ``output_dir``.

    Shards concatenated in index order reproduce the input byte for byte.
    """
    input_path = Path(input_path)
    output_dir = Path(output_dir)
    line_count = count_lines(input_path)
    sizes = plan_shards(line_count, num_workers)
    if len(sizes) != num_workers:
        LOGGER.info(
            "Adjusted worker count %d -> %d for %d input lines",
            num_workers,
            len(sizes),
            line_count,
        )

    shards: List[Path] = []
    try:
        source = input_path.open("rb")
    except OSError as exc:
        raise InputFileError(input_path, str(exc)) from exc
    with source:
        for index, size in enumerate(sizes):
            path = shard_path(output_dir, index)
            try:
                sink = path.open("wb")
            except OSError as exc:
                raise InputFileError(path, str(exc)) from exc
            with sink:
                for _ in range(size):
                    line = source.readline()
                    if not line:
                        break
                    sink.write(line)
            shards.append(path)

    LOGGER.debug("Split %s into %d shards: %s", input_path, len(shards), [p.name for p in shards])
    return shards
