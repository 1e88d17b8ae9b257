from pathlib import Path

import pytest
import yaml

from rb_scrobbler.config.settings import (
    LastFmConfig,
    LoggingConfig,
    RunOptions,
    Settings,
    SubmissionConfig,
)
from rb_scrobbler.core.client import LASTFM_API_ROOT


def write_config(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# =====================================================
# Defaults and validation
# =====================================================


def test_defaults(config_home):
    settings = Settings()

    assert settings.lastfm.api_root == LASTFM_API_ROOT
    assert settings.submission.batch_size == 50
    assert settings.submission.max_attempts == 5
    assert settings.submission.abort_on_malformed is False
    assert settings.logging.path == config_home / "rb-scrobbler" / "rb-scrobbler.log"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"batch_size": 0},
        {"batch_size": 51},
        {"max_attempts": 0},
        {"backoff_base": -1},
        {"backoff_base": 10, "backoff_max": 5},
        {"timeout": 0},
    ],
)
def test_submission_config_validation(kwargs):
    with pytest.raises(ValueError):
        SubmissionConfig(**kwargs)


def test_logging_level_validation():
    with pytest.raises(ValueError):
        LoggingConfig(level="LOUD")


def test_logging_path_string_is_expanded():
    config = LoggingConfig(path="~/scrobbler.log")
    assert config.path == Path("~/scrobbler.log").expanduser()


def test_credentials_require_api_key_and_secret():
    with pytest.raises(ValueError):
        LastFmConfig(api_key="KEY").credentials()


def test_prompted_password_overrides_configured_one():
    config = LastFmConfig(api_key="KEY", api_secret="SECRET", username="u", password="stored")

    assert config.credentials().password == "stored"
    assert config.credentials("typed").password == "typed"


def test_secrets_are_not_in_repr():
    config = LastFmConfig(api_key="KEY", api_secret="SECRET", password="hunter2", session_key="SK")
    assert "hunter2" not in repr(config)
    assert "'SK'" not in repr(config)


# =====================================================
# Loading and saving
# =====================================================


def test_save_and_load_round_trip(tmp_path):
    settings = Settings(
        lastfm=LastFmConfig(api_key="KEY", api_secret="SECRET", username="rockboxer"),
        submission=SubmissionConfig(batch_size=10, timeout=5.0, abort_on_malformed=True),
        logging=LoggingConfig(path=tmp_path / "run.log", level="DEBUG"),
    )
    path = tmp_path / "config.yaml"
    settings.save(path)

    loaded = Settings.from_file(path)
    assert loaded == settings


def test_partial_config_uses_defaults(tmp_path):
    path = write_config(tmp_path / "config.yaml", {"lastfm": {"api_key": "KEY"}})

    settings = Settings.from_file(path)
    assert settings.lastfm.api_key == "KEY"
    assert settings.submission == SubmissionConfig()


def test_unknown_key_is_invalid(tmp_path):
    path = write_config(tmp_path / "config.yaml", {"submission": {"batch": 5}})
    with pytest.raises(ValueError):
        Settings.from_file(path)


def test_non_mapping_config_is_invalid(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Settings.from_file(path)


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        Settings.from_file_or_default(tmp_path / "missing.yaml")


def test_default_location_falls_back_to_defaults(config_home):
    assert Settings.from_file_or_default() == Settings()


def test_broken_default_config_falls_back_to_defaults(config_home):
    path = config_home / "rb-scrobbler" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    write_config(path, {"submission": {"batch_size": 500}})

    assert Settings.from_file_or_default() == Settings()


def test_default_location_is_loaded(config_home):
    path = config_home / "rb-scrobbler" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    write_config(path, {"lastfm": {"api_key": "KEY", "api_secret": "SECRET"}})

    assert Settings.from_file_or_default().lastfm.api_key == "KEY"


# =====================================================
# RunOptions
# =====================================================


@pytest.mark.parametrize("offset", [0, -5.5, 14, -14])
def test_run_options_accept_plausible_offsets(offset):
    assert RunOptions(log_path=Path(".scrobbler.log"), offset_hours=offset).offset_hours == offset


@pytest.mark.parametrize("offset", [15, -14.5, float("nan")])
def test_run_options_reject_implausible_offsets(offset):
    with pytest.raises(ValueError):
        RunOptions(log_path=Path(".scrobbler.log"), offset_hours=offset)
