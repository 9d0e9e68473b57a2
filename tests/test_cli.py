import multiprocessing

import numpy as np
import pandas as pd
import pytest
from PIL import Image as PILImage

from scripts.validate_1n import build_parser, main, resolve_config
from identharness.types import GalleryType

pytestmark = pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(),
    reason="enroll and search fan out through forked workers",
)


def _dataset(tmp_path, count):
    rows = []
    for i in range(count):
        path = tmp_path / f"img{i}.pgm"
        PILImage.fromarray(np.full((8, 8), 10 * i, dtype=np.uint8)).save(path)
        rows.append(f"id{i} {path} ISO\n")
    enroll = tmp_path / "enroll.txt"
    enroll.write_text("".join(rows), encoding="utf-8")
    search = tmp_path / "search.txt"
    search.write_text(rows[0].replace("id0", "probe0") + rows[1].replace("id1", "probe1"), encoding="utf-8")
    return enroll, search


def _common(tmp_path):
    return [
        "-c",
        str(tmp_path / "config"),
        "-e",
        str(tmp_path / "enroll"),
        "-o",
        str(tmp_path / "out"),
        "-h",
        "run",
        "--harness-config",
        str(tmp_path / "harness.yaml"),
    ]


@pytest.fixture()
def harness_yaml(tmp_path):
    (tmp_path / "harness.yaml").write_text("candidate_list_length: 4\n", encoding="utf-8")


def test_cli_runs_every_stage(tmp_path, harness_yaml):
    enroll, search = _dataset(tmp_path, 6)
    common = _common(tmp_path)

    assert main(["enroll", *common, "-i", str(enroll), "-t", "3"]) == 0
    assert main(["merge", *common]) == 0
    assert main(["finalize", *common]) == 0
    assert main(["search", *common, "-i", str(search), "-t", "2"]) == 0
    assert main(["summarize", *common]) == 0

    out = tmp_path / "out"
    assert sorted(p.name for p in out.glob("run.enroll.*")) == ["run.enroll.0", "run.enroll.1", "run.enroll.2"]
    assert (tmp_path / "enroll" / "mei.manifest").exists()
    summary = pd.read_csv(out / "run.candidates.csv")
    assert len(summary) == 2 * 4
    assert list(summary["searchId"].drop_duplicates()) == ["probe0", "probe1"]


def test_cli_insert_with_delete(tmp_path, harness_yaml):
    enroll, search = _dataset(tmp_path, 3)
    common = _common(tmp_path)
    assert main(["enroll", *common, "-i", str(enroll)]) == 0
    assert main(["merge", *common]) == 0
    assert main(["finalize", *common]) == 0

    assert main(["insert", *common, "-i", str(enroll), "--with-delete", "--candidates", "2"]) == 0

    lines = (tmp_path / "out" / "run.insert").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1 + 4 * 2
    assert lines[-1].startswith("id0.d2 ")


def test_cli_requires_input_file(tmp_path, harness_yaml):
    assert main(["enroll", *_common(tmp_path)]) == 1


def test_cli_missing_input_file(tmp_path, harness_yaml):
    assert main(["enroll", *_common(tmp_path), "-i", str(tmp_path / "nope.txt")]) == 1


def test_cli_search_without_gallery_fails(tmp_path, harness_yaml):
    _, search = _dataset(tmp_path, 2)

    assert main(["search", *_common(tmp_path), "-i", str(search)]) == 1


def test_cli_bad_implementation_spec(tmp_path, harness_yaml):
    enroll, _ = _dataset(tmp_path, 2)

    assert main(["enroll", *_common(tmp_path), "-i", str(enroll), "--impl", "identharness.nowhere:Engine"]) == 1


def test_cli_flags_override_harness_config(tmp_path, harness_yaml):
    args = build_parser().parse_args(
        ["finalize", *_common(tmp_path), "--gallery-type", "consolidated", "--candidates", "9"]
    )

    config = resolve_config(args)

    assert config.candidate_list_length == 9
    assert config.gallery_type is GalleryType.CONSOLIDATED
    assert config.insert_with_delete is False


def test_cli_missing_harness_config(tmp_path):
    assert main(["merge", "-o", str(tmp_path / "out"), "--harness-config", str(tmp_path / "nope.yaml")]) == 1


def test_cli_malformed_harness_config(tmp_path):
    bad = tmp_path / "harness.yaml"
    bad.write_text("candidate_list_length: [1,\n", encoding="utf-8")

    assert main(["merge", "-o", str(tmp_path / "out"), "--harness-config", str(bad)]) == 1


def test_cli_engine_factory_failure(tmp_path, harness_yaml, monkeypatch):
    from identharness.reference import null_impl

    def broken_factory():
        raise RuntimeError("license server unreachable")

    monkeypatch.setattr(null_impl, "BrokenEngine", broken_factory, raising=False)
    enroll, _ = _dataset(tmp_path, 2)

    code = main(
        ["enroll", *_common(tmp_path), "-i", str(enroll), "--impl", "identharness.reference.null_impl:BrokenEngine"]
    )

    assert code == 1
