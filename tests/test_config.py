from pathlib import Path

import pytest

import lecture_to_slide.config as config_module
from lecture_to_slide.config import AppConfig, ConfigError, load_config


def test_defaults_place_directories_under_storage(tmp_path: Path) -> None:
    config = AppConfig.from_mapping({}, base_path=tmp_path)

    storage = (tmp_path / "storage").resolve()
    assert config.storage_root == storage
    assert config.upload_root == storage / "uploads"
    assert config.output_root == storage / "outputs"
    assert config.generation_mode == "pptx"
    assert config.is_binary_mode
    assert config.max_turns == 15
    assert config.upload_root.is_dir()
    assert config.output_root.is_dir()


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping({"storage_root": "storage"}, base_path=tmp_path)

    expected_storage = (home_dir / ".lecture_to_slide" / "storage").resolve()
    assert config.storage_root == expected_storage
    assert config.upload_root == expected_storage / "uploads"
    assert expected_storage.exists()
    assert config.output_root.exists()


def test_slides_mode_is_not_binary(tmp_path: Path) -> None:
    config = AppConfig.from_mapping({"generation_mode": "Slides"}, base_path=tmp_path)

    assert config.generation_mode == "slides"
    assert not config.is_binary_mode


@pytest.mark.parametrize(
    "overrides",
    [
        {"generation_mode": "video"},
        {"transcription_backend": "carrier-pigeon"},
        {"max_turns": 0},
        {"slide_count": "many"},
        {"provider_timeout_seconds": "soon"},
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, overrides) -> None:
    with pytest.raises(ConfigError):
        AppConfig.from_mapping(overrides, base_path=tmp_path)


def test_load_config_applies_environment_overrides(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(config_module, "__file__", str(tmp_path / "pkg" / "config.py"))
    config_file = tmp_path / "settings.json"
    config_file.write_text('{"max_turns": 4, "slide_count": 7}', encoding="utf-8")

    config = load_config(
        config_file,
        environ={
            "LECTURE_TO_SLIDE_MAX_TURNS": "9",
            "LECTURE_TO_SLIDE_GENERATION_MODE": "slides",
            "LECTURE_TO_SLIDE_SLIDE_COUNT": "   ",
        },
    )

    assert config.max_turns == 9
    assert config.slide_count == 7
    assert config.generation_mode == "slides"
    assert config.storage_root == (tmp_path / "storage").resolve()


def test_load_config_tolerates_missing_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(config_module, "__file__", str(tmp_path / "pkg" / "config.py"))

    config = load_config(tmp_path / "missing.json", environ={})

    assert config.generation_model == config_module.DEFAULTS["generation_model"]
    assert config.provider_timeout_seconds == 300.0
