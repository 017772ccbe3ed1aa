import json

import pytest

from cover_crop_tool.config import DEFAULT_SETTINGS
from cover_crop_tool.settings import load_settings, save_settings, validate_settings


def test_defaults_are_valid():
    assert validate_settings(DEFAULT_SETTINGS) == []


def test_missing_file_writes_defaults(config_home):
    settings = load_settings()
    assert settings == DEFAULT_SETTINGS
    raw = json.loads((config_home / "settings.json").read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert raw["settings"] == DEFAULT_SETTINGS


def test_save_and_load_round_trip(config_home):
    custom = dict(DEFAULT_SETTINGS, background="#112233", format="WEBP", max_bytes=50_000)
    save_settings(custom)
    assert load_settings() == custom


def test_partial_file_is_merged_with_defaults(config_home):
    (config_home / "settings.json").write_text(
        json.dumps({"version": 1, "settings": {"background": "black"}}), encoding="utf-8",
    )
    settings = load_settings()
    assert settings["background"] == "black"
    assert settings["viewport"] == DEFAULT_SETTINGS["viewport"]


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps({"settings": {}}),
    json.dumps({"version": 1, "settings": {"max_bytes": -5}}),
])
def test_corrupt_or_invalid_file_restores_defaults(config_home, content):
    path = config_home / "settings.json"
    path.write_text(content, encoding="utf-8")
    assert load_settings() == DEFAULT_SETTINGS
    assert json.loads(path.read_text(encoding="utf-8"))["settings"] == DEFAULT_SETTINGS


def test_save_rejects_invalid(config_home):
    with pytest.raises(ValueError, match="background"):
        save_settings(dict(DEFAULT_SETTINGS, background="nope"))
    assert not (config_home / "settings.json").exists()


@pytest.mark.parametrize("override, fragment", [
    ({"viewport": 0}, "viewport"),
    ({"viewport": True}, "viewport"),
    ({"max_bytes": 1.5}, "max_bytes"),
    ({"format": "PNG"}, "format"),
    ({"min_quality": 0}, "min_quality"),
    ({"quality_step": "0.1"}, "quality_step"),
    ({"jpeg_subsampling": "4:1:1"}, "jpeg_subsampling"),
    ({"colour": "red"}, "unknown keys"),
])
def test_validate_reports_each_problem(override, fragment):
    errors = validate_settings(dict(DEFAULT_SETTINGS, **override))
    assert len(errors) == 1
    assert fragment in errors[0]


def test_validate_rejects_non_dict():
    assert validate_settings([]) == ["Settings must be a dict"]
