from __future__ import annotations

import json
from pathlib import Path

import pytest

from media_reducer.config import Config, PdfConfig, config_from_dict, load_config
from media_reducer.exceptions import ConfigError


def test_defaults_are_resolved_at_construction() -> None:
    config = load_config(None)
    assert config == Config()
    assert config.pdf.jpeg_quality == 70
    assert config.pdf.jpeg_max_length == 2000
    assert (config.pdf.image_quality_min, config.pdf.image_quality_max) == (65, 80)
    assert config.pdf.strip_info is False
    assert config.jpeg.exif == "orientation"
    assert config.png.colors == 256


def test_load_config_reads_sections(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "pdf": {"strip_info": True, "remove_unused_fonts": True, "jpeg_max_length": 1500},
        "png": {"quality_min": 10, "quality_max": 90, "colors": 64},
    }))

    config = load_config(path)

    assert config.pdf.strip_info is True
    assert config.pdf.remove_unused_fonts is True
    assert config.pdf.strip_metadata is False
    assert config.pdf.jpeg_max_length == 1500
    assert config.png.colors == 64
    assert config.jpeg.quality == 70


def test_profile_paths_resolve_against_config_dir(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"pdf": {"cmyk_profile": "profiles/swop.icc"}}))

    config = load_config(path)

    assert config.pdf.cmyk_profile == str(tmp_path / "profiles" / "swop.icc")


@pytest.mark.parametrize(
    "raw",
    [
        {"pdf": {"jpeg_quality": 101}},
        {"pdf": {"jpeg_quality": -1}},
        {"pdf": {"jpeg_max_length": 0}},
        {"pdf": {"image_quality_min": 90, "image_quality_max": 50}},
        {"pdf": {"strip_info": "yes"}},
        {"pdf": {"unknown": 1}},
        {"jpeg": {"exif": "some"}},
        {"png": {"colors": 1}},
        {"heif": {}},
        {"gif": {"loop": -1}},
        {"gif": {"colors": 300}},
        {"webp": {"method": 7}},
        {"webp": {"lossless": "no"}},
        {"pdf": []},
    ],
)
def test_invalid_values_are_rejected(raw: dict) -> None:
    with pytest.raises(ConfigError):
        config_from_dict(raw)


def test_invalid_json_raises_config_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_config_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")


def test_bool_is_not_accepted_as_quality() -> None:
    with pytest.raises(ConfigError):
        PdfConfig(jpeg_quality=True)


def test_gif_and_webp_sections(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "gif": {"colors": 32, "loop": 0},
        "webp": {"quality": 55, "lossless": True},
    }))

    config = load_config(path)

    assert (config.gif.colors, config.gif.loop) == (32, 0)
    assert config.webp.quality == 55
    assert config.webp.lossless is True
    assert config.webp.method == 4
