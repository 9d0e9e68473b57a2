"""Whitespace-delimited result tables written by every stage, plus pandas readers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO

import pandas as pd

from identharness.errors import InputFileError, ProtocolError
from identharness.search import SearchResult
from identharness.types import Candidate, EyePair, ReturnStatus

LOGGER = logging.getLogger("identharness.results")

ENROLLMENT_COLUMNS = [
    "id",
    "image",
    "templateSizeBytes",
    "returnCode",
    "isLeftEyeAssigned",
    "isRightEyeAssigned",
    "xleft",
    "yleft",
    "xright",
    "yright",
]
CANDIDATE_COLUMNS = [
    "searchId",
    "candidateRank",
    "searchRetCode",
    "isAssigned",
    "templateId",
    "score",
    "decision",
]
# Placeholder for an unassigned candidate's empty id, keeps the column count fixed.
EMPTY_ID = "NA"


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _score(value: float) -> str:
    return format(float(value), "g")


def _candidate_id(search_id: str, candidate: Candidate) -> str:
    template_id = candidate.template_id
    if not template_id:
        return EMPTY_ID
    if any(ch.isspace() for ch in template_id):
        raise ProtocolError(
            f"Search {search_id}: candidate id {template_id!r} contains whitespace and cannot be logged"
        )
    if template_id == EMPTY_ID:
        LOGGER.warning("Search %s: candidate id %r will read back as unassigned", search_id, template_id)
    return template_id


class _TableWriter:
    columns: Sequence[str] = ()

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._fh: Optional[TextIO] = None
        self.rows_written = 0

    def open(self):
        try:
            self._fh = self.path.open("w", encoding="utf-8", newline="\n")
        except OSError as exc:
            raise InputFileError(self.path, str(exc)) from exc
        self._fh.write(" ".join(self.columns) + "\n")
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _write_row(self, values: Iterable[str]) -> None:
        if self._fh is None:
            raise RuntimeError(f"{type(self).__name__} for {self.path} is not open")
        self._fh.write(" ".join(values) + "\n")
        self.rows_written += 1


class EnrollmentLog(_TableWriter):
    """One row per (record id, image) with template size, status and eye coordinates."""

    columns = ENROLLMENT_COLUMNS

    def write_record(
        self,
        record_id: str,
        image_paths: Sequence[Path],
        template_size: int,
        status: ReturnStatus,
        eyes: Sequence[EyePair],
    ) -> None:
        for image_path, eye in zip(image_paths, eyes):
            self._write_row(
                [
                    record_id,
                    str(image_path),
                    str(template_size),
                    str(int(status.code)),
                    _flag(eye.is_left_assigned),
                    _flag(eye.is_right_assigned),
                    str(int(eye.xleft)),
                    str(int(eye.yleft)),
                    str(int(eye.xright)),
                    str(int(eye.yright)),
                ]
            )


class CandidateListLog(_TableWriter):
    """One row per (search id, rank)."""

    columns = CANDIDATE_COLUMNS

    def write_result(self, search_id: str, result: SearchResult) -> None:
        code = str(int(result.status.code))
        decision = _flag(result.decision)
        for rank, candidate in enumerate(result.candidates):
            self._write_row(
                [
                    search_id,
                    str(rank),
                    code,
                    _flag(candidate.is_assigned),
                    _candidate_id(search_id, candidate),
                    _score(candidate.similarity_score),
                    decision,
                ]
            )


def _read_table(path: Path, columns: Sequence[str], id_columns: Sequence[str]) -> pd.DataFrame:
    try:
        df = pd.read_csv(
            path,
            sep=r"\s+",
            dtype={name: str for name in id_columns},
            keep_default_na=False,
        )
    except OSError as exc:
        raise InputFileError(path, str(exc)) from exc
    missing = [name for name in columns if name not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns {missing}")
    return df[list(columns)]


def read_enrollment_log(path: Path) -> pd.DataFrame:
    return _read_table(path, ENROLLMENT_COLUMNS, ["id", "image"])


def read_candidate_log(path: Path) -> pd.DataFrame:
    df = _read_table(path, CANDIDATE_COLUMNS, ["searchId", "templateId"])
    df["templateId"] = df["templateId"].replace(EMPTY_ID, "")
    return df


def summarize_candidate_logs(paths: Sequence[Path]) -> pd.DataFrame:
    """Concatenate per-shard candidate logs, ordered by search id then rank."""
    frames: List[pd.DataFrame] = [read_candidate_log(Path(p)) for p in paths]
    if not frames:
        return pd.DataFrame(columns=CANDIDATE_COLUMNS)
    merged = pd.concat(frames, ignore_index=True)
    merged = merged.sort_values(["searchId", "candidateRank"], kind="stable").reset_index(drop=True)
    LOGGER.info("Merged %d candidate rows from %d logs", len(merged), len(frames))
    return merged


def search_status_counts(candidates: pd.DataFrame) -> pd.DataFrame:
    """Per return code, how many searches ended with it (one count per search id)."""
    per_search = candidates.drop_duplicates("searchId")
    counts = per_search.groupby("searchRetCode").size().rename("searches").reset_index()
    return counts.sort_values("searchRetCode").reset_index(drop=True)
