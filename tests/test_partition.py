import pytest

from identharness.errors import InputFileError
from identharness.partition import plan_shards, split_input_file


def _write_lines(path, count, trailing_newline=True):
    body = "\n".join(f"id{i} img{i}.ppm UNKNOWN" for i in range(count))
    if trailing_newline and count:
        body += "\n"
    path.write_text(body, encoding="utf-8")
    return path


def test_seven_lines_over_three_workers(tmp_path):
    source = _write_lines(tmp_path / "a.txt", 7)
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    shards = split_input_file(source, out_dir, 3)

    assert [p.name for p in shards] == ["input.txt.0", "input.txt.1", "input.txt.2"]
    sizes = [len(p.read_text(encoding="utf-8").splitlines()) for p in shards]
    assert sizes == [3, 2, 2]
    assert b"".join(p.read_bytes() for p in shards) == source.read_bytes()


@pytest.mark.parametrize("workers", [5, 6, 50])
def test_workers_clamped_to_line_count(tmp_path, workers):
    source = _write_lines(tmp_path / "a.txt", 5)

    shards = split_input_file(source, tmp_path, workers)

    assert len(shards) == 5
    assert all(p.read_bytes() for p in shards)


def test_concatenation_preserves_missing_final_newline(tmp_path):
    source = _write_lines(tmp_path / "a.txt", 10, trailing_newline=False)

    shards = split_input_file(source, tmp_path, 4)

    assert len(shards) == 4
    assert b"".join(p.read_bytes() for p in shards) == source.read_bytes()
    assert not shards[-1].read_bytes().endswith(b"\n")


def test_plan_never_leaves_an_empty_shard():
    for lines in range(1, 40):
        for workers in range(1, 45):
            sizes = plan_shards(lines, workers)
            assert sum(sizes) == lines
            assert min(sizes) >= 1
            assert len(sizes) <= min(lines, workers)
            assert max(sizes) - min(sizes) <= 1


def test_empty_input_produces_no_shards(tmp_path):
    source = tmp_path / "empty.txt"
    source.write_text("", encoding="utf-8")

    assert split_input_file(source, tmp_path, 4) == []


def test_missing_input_is_fatal(tmp_path):
    with pytest.raises(InputFileError):
        split_input_file(tmp_path / "missing.txt", tmp_path, 2)


def test_unwritable_output_dir_is_fatal(tmp_path):
    source = _write_lines(tmp_path / "a.txt", 3)

    with pytest.raises(InputFileError):
        split_input_file(source, tmp_path / "no" / "such" / "dir", 2)


def test_worker_count_must_be_positive(tmp_path):
    source = _write_lines(tmp_path / "a.txt", 3)

    with pytest.raises(ValueError):
        split_input_file(source, tmp_path, 0)
