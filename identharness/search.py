"""Identification glue that enforces the fixed-length candidate list."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from identharness.interface import IdentInterface
from identharness.types import SUCCESS, Candidate, ReturnCode, ReturnStatus

LOGGER = logging.getLogger("identharness.search")


@dataclass
class SearchResult:
    status: ReturnStatus
    candidates: List[Candidate] = field(default_factory=list)
    decision: bool = False


def unassigned_candidates(count: int) -> List[Candidate]:
    return [Candidate() for _ in range(count)]


def identify(
    engine: IdentInterface,
    template: bytes,
    candidate_list_length: int,
    creation_status: ReturnStatus = SUCCESS,
) -> SearchResult:
    """Search one probe and return exactly ``candidate_list_length`` candidates.

    If template creation failed the engine is not called and the creation
    status is reported. If the search itself fails, whatever the engine
    returned is discarded. Successful lists are never re-sorted; they are only
    padded with unassigned entries or truncated to the requested length.
    """
    k = candidate_list_length
    if not creation_status.ok:
        return SearchResult(creation_status, unassigned_candidates(k), False)

    try:
        status, candidates, decision = engine.identify_template(template, k)
    except Exception as exc:  # noqa: BLE001 - recorded per probe
        LOGGER.warning("identifyTemplate raised: %s", exc)
        return SearchResult(ReturnStatus(ReturnCode.VENDOR_ERROR, str(exc)), unassigned_candidates(k), False)

    if not status.ok:
        return SearchResult(status, unassigned_candidates(k), False)

    candidates = list(candidates or [])
    if len(candidates) != k:
        LOGGER.warning("identifyTemplate returned %d candidates, expected %d; normalizing", len(candidates), k)
        candidates = (candidates + unassigned_candidates(k))[:k]
    return SearchResult(status, candidates, bool(decision))
