#!/usr/bin/env python3
"""CLI driver for the 1:N identification validation harness."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from identharness.config import HarnessConfig, load_config
from identharness.errors import EXIT_FAILURE, HarnessError
from identharness.interface import load_implementation
from identharness.io_utils import ensure_dir, setup_logging
from identharness.results import search_status_counts, summarize_candidate_logs
from identharness.stages import (
    OutputLayout,
    candidate_logs,
    run_enroll,
    run_finalize,
    run_insert,
    run_merge,
    run_search,
)

LOGGER = logging.getLogger("scripts.validate_1n")

ACTIONS = ("enroll", "finalize", "search", "insert", "merge", "summarize")
EXIT_SUCCESS = 0


def build_parser() -> argparse.ArgumentParser:
    # -h is the output stem, so help lives on --help only.
    parser = argparse.ArgumentParser(
        description="Drive a 1:N identification engine through enroll/finalize/search/insert",
        add_help=False,
    )
    parser.add_argument("action", choices=ACTIONS, help="Pipeline stage to run")
    parser.add_argument("-c", dest="config_dir", type=Path, default=Path("config"), help="Engine configuration directory")
    parser.add_argument("-e", dest="enroll_dir", type=Path, default=Path("enroll"), help="Enrollment (gallery) directory")
    parser.add_argument("-o", dest="output_dir", type=Path, default=Path("output"), help="Output directory")
    parser.add_argument("-h", dest="output_stem", type=str, default="stem", help="Output file stem")
    parser.add_argument("-i", dest="input_file", type=Path, default=None, help="Input file (one record per line)")
    parser.add_argument("-t", dest="num_forks", type=int, default=1, help="Number of worker processes")
    parser.add_argument(
        "--impl",
        dest="implementation",
        type=str,
        default=None,
        help="Engine to load as module:attribute (overrides harness config)",
    )
    parser.add_argument(
        "--harness-config",
        type=Path,
        default=None,
        help="Harness YAML config (default configs/harness.yaml when present)",
    )
    parser.add_argument(
        "--candidates",
        dest="candidate_list_length",
        type=int,
        default=None,
        help="Candidate list length per search",
    )
    parser.add_argument(
        "--gallery-type",
        choices=("consolidated", "unconsolidated"),
        default=None,
        help="Gallery type passed to finalize",
    )
    parser.add_argument(
        "--with-delete",
        dest="insert_with_delete",
        action="store_true",
        default=None,
        help="After inserting, delete each id again and re-search",
    )
    parser.add_argument(
        "--keep-shards",
        dest="keep_shard_inputs",
        action="store_true",
        default=None,
        help="Keep per-worker input shards after processing",
    )
    parser.add_argument("--progress", action="store_true", default=None, help="Show per-shard progress bars")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def resolve_config(args: argparse.Namespace) -> HarnessConfig:
    config = load_config(args.harness_config)
    return config.with_overrides(
        implementation=args.implementation,
        candidate_list_length=args.candidate_list_length,
        gallery_type=args.gallery_type,
        insert_with_delete=args.insert_with_delete,
        keep_shard_inputs=args.keep_shard_inputs,
        progress=args.progress,
    )


def _require_input(args: argparse.Namespace) -> Path:
    if args.input_file is None:
        raise HarnessError(f"{args.action} requires an input file (-i)")
    return args.input_file


def run(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    layout = OutputLayout(
        output_dir=args.output_dir,
        stem=args.output_stem,
        edb_name=config.edb_name,
        manifest_name=config.manifest_name,
    )
    LOGGER.info(
        "Action=%s impl=%s config_dir=%s enroll_dir=%s output_dir=%s forks=%d k=%d",
        args.action,
        config.implementation,
        args.config_dir,
        args.enroll_dir,
        args.output_dir,
        args.num_forks,
        config.candidate_list_length,
    )

    if args.action == "merge":
        run_merge(layout)
        return EXIT_SUCCESS
    if args.action == "summarize":
        return summarize(layout)

    engine = load_implementation(config.implementation)
    if args.action == "enroll":
        result = run_enroll(engine, config, args.config_dir, _require_input(args), layout, args.num_forks)
        return EXIT_SUCCESS if result.ok else EXIT_FAILURE
    if args.action == "search":
        result = run_search(
            engine, config, args.config_dir, args.enroll_dir, _require_input(args), layout, args.num_forks
        )
        return EXIT_SUCCESS if result.ok else EXIT_FAILURE
    if args.action == "finalize":
        run_finalize(engine, config, args.config_dir, args.enroll_dir, layout)
        return EXIT_SUCCESS
    if args.action == "insert":
        run_insert(engine, config, args.config_dir, args.enroll_dir, _require_input(args), layout)
        return EXIT_SUCCESS
    raise HarnessError(f"Unknown command: {args.action}")


def summarize(layout: OutputLayout) -> int:
    paths: List[Path] = candidate_logs(layout)
    if layout.insert_log().exists():
        paths.append(layout.insert_log())
    if not paths:
        LOGGER.warning("No candidate logs for stem %s under %s", layout.stem, layout.output_dir)
        return EXIT_SUCCESS
    merged = summarize_candidate_logs(paths)
    ensure_dir(layout.output_dir)
    output_path = layout.output_dir / f"{layout.stem}.candidates.csv"
    merged.to_csv(output_path, index=False)
    counts = search_status_counts(merged)
    for _, row in counts.iterrows():
        LOGGER.info("searchRetCode=%s searches=%d", row["searchRetCode"], row["searches"])
    LOGGER.info("Wrote merged candidate table %s (%d rows)", output_path, len(merged))
    return EXIT_SUCCESS


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return run(args)
    except HarnessError as exc:
        LOGGER.error("%s", exc)
        return exc.exit_code
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
