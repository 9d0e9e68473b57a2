import pytest

from identharness.config import DEFAULT_IMPLEMENTATION, HarnessConfig, load_config
from identharness.errors import InputFileError
from identharness.types import GalleryType


def test_missing_default_config_uses_dataclass_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config == HarnessConfig()
    assert config.implementation == DEFAULT_IMPLEMENTATION
    assert config.candidate_list_length == 20


def test_yaml_values_and_unknown_keys(tmp_path, caplog):
    path = tmp_path / "harness.yaml"
    path.write_text(
        "candidate_list_length: 5\ngallery_type: CONSOLIDATED\nnot_a_setting: 1\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.candidate_list_length == 5
    assert config.gallery_type is GalleryType.CONSOLIDATED
    assert "not_a_setting" in caplog.text


def test_overrides_skip_unset_values():
    base = HarnessConfig(candidate_list_length=7)

    updated = base.with_overrides(candidate_list_length=None, gallery_type="consolidated", progress=True)

    assert updated.candidate_list_length == 7
    assert updated.gallery_type is GalleryType.CONSOLIDATED
    assert updated.progress is True
    assert base.with_overrides(implementation=None) is base


@pytest.mark.parametrize("kwargs", [{"candidate_list_length": 0}, {"gallery_type": "mixed"}])
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValueError):
        HarnessConfig(**kwargs)


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "harness.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(path)


def test_unreadable_or_malformed_config_is_an_input_error(tmp_path):
    bad = tmp_path / "harness.yaml"
    bad.write_text("gallery_type: [unclosed\n", encoding="utf-8")

    with pytest.raises(InputFileError):
        load_config(tmp_path / "missing.yaml")
    with pytest.raises(InputFileError, match="invalid YAML"):
        load_config(bad)
