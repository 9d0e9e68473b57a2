"""One forked worker process per shard, joined unconditionally."""

from __future__ import annotations

import logging
import multiprocessing
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from identharness.errors import EXIT_FAILURE, HarnessError

LOGGER = logging.getLogger("identharness.pool")

ShardTask = Callable[[int], None]


@dataclass
class ShardOutcome:
    index: int
    pid: Optional[int]
    exitcode: Optional[int]

    @property
    def signal(self) -> Optional[int]:
        if self.exitcode is not None and self.exitcode < 0:
            return -self.exitcode
        return None

    @property
    def ok(self) -> bool:
        return self.exitcode == 0

    def describe(self) -> str:
        if self.exitcode is None:
            return f"shard {self.index}: failed to start"
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"shard {self.index} (pid {self.pid}) exited due to signal {name}"
        return f"shard {self.index} (pid {self.pid}) exited with status {self.exitcode}"


@dataclass
class PoolResult:
    outcomes: List[ShardOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failed(self) -> List[ShardOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


def _child_main(task: ShardTask, index: int) -> None:
    """Entry point inside the forked worker; converts errors to an exit status."""
    try:
        task(index)
    except HarnessError as exc:
        LOGGER.error("Shard %d failed: %s", index, exc)
        sys.exit(exc.exit_code)
    except Exception:
        LOGGER.exception("Shard %d crashed", index)
        sys.exit(EXIT_FAILURE)


def run_sharded(task: ShardTask, num_shards: int) -> PoolResult:
    """Run ``task(index)`` in its own forked process for every shard index.

    Children inherit the parent's already-initialized state copy-on-write.
    Every child is waited for, whatever the others did; there is no timeout.
    """
    ctx = multiprocessing.get_context("fork")
    processes = []
    outcomes: List[ShardOutcome] = []
    for index in range(num_shards):
        proc = ctx.Process(target=_child_main, args=(task, index), name=f"shard-{index}")
        try:
            proc.start()
        except OSError as exc:
            LOGGER.error("Problem forking worker for shard %d: %s", index, exc)
            outcomes.append(ShardOutcome(index=index, pid=None, exitcode=None))
            continue
        LOGGER.debug("Started shard %d as pid %s", index, proc.pid)
        processes.append((index, proc))

    for index, proc in processes:
        proc.join()
        outcomes.append(ShardOutcome(index=index, pid=proc.pid, exitcode=proc.exitcode))

    outcomes.sort(key=lambda outcome: outcome.index)
    result = PoolResult(outcomes)
    for outcome in result.failed:
        LOGGER.error("%s", outcome.describe())
    LOGGER.info(
        "Pool finished: %d/%d shards succeeded (parent pid %d)",
        len(outcomes) - len(result.failed),
        len(outcomes),
        os.getpid(),
    )
    return result

