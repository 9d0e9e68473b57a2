import numpy as np
import pytest
from PIL import Image as PILImage

from identharness.errors import InputFileError, InputFormatError, ProtocolError, StageError
from identharness.io_utils import read_image
from identharness.reference.null_impl import NullImplementation
from identharness.templates import (
    create_template,
    initialize_template_creation,
    iter_input_records,
    load_faces,
    parse_input_line,
)
from identharness.types import EyePair, Image, ImageLabel, ReturnCode, ReturnStatus, TemplateRole


def _faces(count):
    return [Image(width=4, height=4, depth=8, data=np.zeros((4, 4), dtype=np.uint8)) for _ in range(count)]


class _ShortEyesEngine(NullImplementation):
    def create_template(self, faces, role):
        return ReturnStatus(), b"tmpl", [EyePair(True, True, 1, 1, 2, 2)]


class _FailingEngine(NullImplementation):
    def create_template(self, faces, role):
        return ReturnStatus(ReturnCode.FACE_DETECTION_ERROR), b"", []


class _RaisingEngine(NullImplementation):
    def create_template(self, faces, role):
        raise MemoryError("out of memory")


class _RefusingInitEngine(NullImplementation):
    def initialize_template_creation(self, config_dir, role):
        return ReturnStatus(ReturnCode.CONFIG_ERROR, "no model files")


def test_parse_multi_image_record(tmp_path):
    input_path = tmp_path / "enroll.txt"

    record = parse_input_line("subj7 a.ppm ISO b.ppm mugshot\n", input_path, 3)

    assert record.record_id == "subj7"
    assert record.line_number == 3
    assert record.image_paths == [tmp_path / "a.ppm", tmp_path / "b.ppm"]
    assert [label for _, label in record.images] == [ImageLabel.ISO, ImageLabel.MUGSHOT]


def test_unknown_label_falls_back(tmp_path):
    record = parse_input_line("x /abs/img.ppm selfie", tmp_path / "in.txt", 1)

    assert record.images[0][1] == ImageLabel.UNKNOWN
    assert str(record.image_paths[0]) == "/abs/img.ppm"


@pytest.mark.parametrize("line", ["subj", "subj a.ppm", "subj a.ppm ISO b.ppm"])
def test_record_without_image_label_pairs_is_rejected(tmp_path, line):
    with pytest.raises(InputFormatError):
        parse_input_line(line, tmp_path / "in.txt", 1)


def test_iter_records_skips_blank_lines(tmp_path):
    input_path = tmp_path / "in.txt"
    input_path.write_text("a x.ppm ISO\n\n   \nb y.ppm WILD\n", encoding="utf-8")

    records = list(iter_input_records(input_path))

    assert [r.record_id for r in records] == ["a", "b"]
    assert [r.line_number for r in records] == [1, 4]


def test_load_faces_decodes_grey_and_colour(tmp_path):
    grey = tmp_path / "g.pgm"
    colour = tmp_path / "c.ppm"
    PILImage.fromarray(np.full((6, 5), 40, dtype=np.uint8)).save(grey)
    PILImage.fromarray(np.full((6, 5, 3), 90, dtype=np.uint8)).save(colour)
    input_path = tmp_path / "in.txt"
    input_path.write_text("s g.pgm ISO c.ppm WILD\n", encoding="utf-8")

    record = next(iter_input_records(input_path))
    faces = load_faces(record)

    assert [(f.width, f.height, f.depth) for f in faces] == [(5, 6, 8), (5, 6, 24)]
    assert faces[1].data.shape == (6, 5, 3)
    assert faces[1].label == ImageLabel.WILD


def test_unreadable_image_is_fatal(tmp_path):
    with pytest.raises(InputFileError):
        read_image(tmp_path / "missing.ppm")


def test_eye_count_mismatch_on_success_is_protocol_error():
    with pytest.raises(ProtocolError):
        create_template(_ShortEyesEngine(), _faces(3), TemplateRole.ENROLLMENT_1N, "subj1")


def test_failed_extraction_pads_eye_list():
    result = create_template(_FailingEngine(), _faces(2), TemplateRole.ENROLLMENT_1N, "subj1")

    assert result.status.code == ReturnCode.FACE_DETECTION_ERROR
    assert result.template == b""
    assert result.eyes == [EyePair(), EyePair()]


def test_engine_exception_becomes_vendor_error():
    result = create_template(_RaisingEngine(), _faces(1), TemplateRole.SEARCH_1N, "probe")

    assert result.status.code == ReturnCode.VENDOR_ERROR
    assert len(result.eyes) == 1


def test_null_engine_template_and_eyes():
    result = create_template(NullImplementation(), _faces(2), TemplateRole.ENROLLMENT_1N)

    assert result.status.ok
    assert result.template.startswith(b"2 Somewhere out there")
    assert result.eyes[1] == EyePair(True, True, 1, 1, 2, 2)


def test_initialization_failure_is_fatal(tmp_path):
    with pytest.raises(StageError) as excinfo:
        initialize_template_creation(_RefusingInitEngine(), tmp_path, TemplateRole.ENROLLMENT_1N)

    assert "no model files" in str(excinfo.value)


def test_explicit_base_dir_overrides_input_directory(tmp_path):
    shard = tmp_path / "out" / "input.txt.0"
    images_dir = tmp_path / "data"

    record = parse_input_line("s1 face.ppm ISO", shard, 1, base_dir=images_dir)

    assert record.image_paths == [images_dir / "face.ppm"]
