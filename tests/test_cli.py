import pytest
import yaml
from rich.console import Console
from typer.testing import CliRunner

from conftest import StubClient, make_line, make_log
from rb_scrobbler import cli, service
from rb_scrobbler.cli import app
from rb_scrobbler.exceptions import InvalidCredentialsError

runner = CliRunner()


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / ".scrobbler.log"
    path.write_text(
        make_log(make_line(title="One"), make_line(title="Two"), make_line(title="Skip", rating="S")),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "lastfm": {"api_key": "KEY", "api_secret": "SECRET", "session_key": "SK"},
        "logging": {"path": str(tmp_path / "run.log")},
    }), encoding="utf-8")
    return path


@pytest.fixture
def stub(monkeypatch):
    client = StubClient()
    monkeypatch.setattr(service, "LastFmClient", lambda **kwargs: client)
    return client


def scrobble(log_file, config_file, *args, **kwargs):
    return runner.invoke(
        app,
        ["scrobble", "-f", str(log_file), "-c", str(config_file), *args],
        **kwargs,
    )


# =====================================================
# scrobble
# =====================================================


def test_scrobble_keeps_file(log_file, config_file, stub):
    result = scrobble(log_file, config_file, "-n", "keep")

    assert result.exit_code == 0, result.output
    assert "Accepted: 2" in result.output
    assert "Ignored: 1" in result.output
    assert log_file.exists()
    assert [r.title for r in stub.batches[0]] == ["One", "Two"]


def test_scrobble_applies_offset(log_file, config_file, stub):
    result = scrobble(log_file, config_file, "-n", "keep", "--offset=-5.5")

    assert result.exit_code == 0, result.output
    assert stub.batches[0][0].timestamp == 1700000000 + 19800


def test_scrobble_delete_on_success(log_file, config_file, stub):
    result = scrobble(log_file, config_file, "-n", "delete-on-success")

    assert result.exit_code == 0, result.output
    assert not log_file.exists()


def test_scrobble_prompts_before_deleting(log_file, config_file, stub):
    result = scrobble(log_file, config_file, input="y\n")

    assert result.exit_code == 0, result.output
    assert not log_file.exists()


def test_failed_run_keeps_file_and_exits_nonzero(log_file, config_file, stub):
    stub.auth_error = InvalidCredentialsError("Authentication Failed")

    result = scrobble(log_file, config_file, "-n", "delete-on-success")

    assert result.exit_code == 1
    assert "Authentication Failed" in result.output
    assert "not deleted" in result.output
    assert log_file.exists()


def test_interrupted_run_prints_partial_summary(log_file, config_file, stub):
    stub.fail_on_call = {1: KeyboardInterrupt()}

    result = scrobble(log_file, config_file, "-n", "delete-on-success")

    assert result.exit_code == 1
    assert "Run cancelled" in result.output
    assert "Failed: 2" in result.output
    assert log_file.exists()


def test_scrobble_prompts_for_password(tmp_path, log_file, stub):
    config = tmp_path / "login.yaml"
    config.write_text(yaml.safe_dump({
        "lastfm": {"api_key": "KEY", "api_secret": "SECRET", "username": "rockboxer"},
    }), encoding="utf-8")

    result = scrobble(log_file, config, "-n", "keep", input="hunter2\n")

    assert result.exit_code == 0, result.output
    assert stub.authenticated == 1


def test_invalid_offset_is_a_usage_error(log_file, config_file, stub):
    result = scrobble(log_file, config_file, "--offset", "20")

    assert result.exit_code == 2
    assert stub.authenticated == 0


def test_missing_api_key_is_an_error(tmp_path, log_file, stub):
    config = tmp_path / "empty.yaml"
    config.write_text(yaml.safe_dump({"lastfm": {"session_key": "SK"}}), encoding="utf-8")

    result = scrobble(log_file, config, "-n", "keep")

    assert result.exit_code == 1
    assert "api_key" in result.output


def test_missing_log_file_is_rejected(tmp_path, config_file, stub):
    result = scrobble(tmp_path / "nope.log", config_file)
    assert result.exit_code != 0


# =====================================================
# inspect
# =====================================================


def test_inspect_shows_records_and_rejected_lines(tmp_path):
    path = tmp_path / ".scrobbler.log"
    path.write_text(make_log(make_line(artist="Nirvana"), "bad\tline"), encoding="utf-8")

    result = runner.invoke(app, ["inspect", "-f", str(path)])

    assert result.exit_code == 0, result.output
    assert "Format version: 1.1" in result.output
    assert "Nirvana" in result.output
    assert "2023-11-14 22:13:20" in result.output
    assert "Rejected Lines" in result.output


def test_inspect_dates_clockless_plays_like_scrobble(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "console", Console(width=200))
    path = tmp_path / ".scrobbler.log"
    path.write_text(make_log(make_line(timestamp="0")), encoding="utf-8")

    result = runner.invoke(app, ["inspect", "-f", str(path)])

    assert result.exit_code == 0, result.output
    assert "no clock, dated now" in result.output
    assert "1970-01-01" not in result.output


def test_inspect_without_records_exits_nonzero(tmp_path):
    path = tmp_path / ".scrobbler.log"
    path.write_text(make_log("bad\tline"), encoding="utf-8")

    result = runner.invoke(app, ["inspect", "-f", str(path)])
    assert result.exit_code == 1


def test_inspect_unsupported_version(tmp_path):
    path = tmp_path / ".scrobbler.log"
    path.write_text(make_log(make_line(), header="#AUDIOSCROBBLER/3.0\n"), encoding="utf-8")

    result = runner.invoke(app, ["inspect", "-f", str(path)])

    assert result.exit_code == 1
    assert "Unsupported log version" in result.output


# =====================================================
# init-config
# =====================================================


def test_init_config_writes_defaults(tmp_path):
    output = tmp_path / "config.yaml"

    result = runner.invoke(app, ["init-config", "-o", str(output)])

    assert result.exit_code == 0, result.output
    data = yaml.safe_load(output.read_text(encoding="utf-8"))
    assert data["submission"]["batch_size"] == 50
    assert data["lastfm"]["api_key"] == ""


def test_init_config_does_not_overwrite_without_confirmation(tmp_path):
    output = tmp_path / "config.yaml"
    output.write_text("custom: true\n", encoding="utf-8")

    result = runner.invoke(app, ["init-config", "-o", str(output)], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert output.read_text(encoding="utf-8") == "custom: true\n"
