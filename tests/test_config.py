"""Tests for the configuration subsystem."""

import dataclasses
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from extrahop_backup.config import BackupConfig, Endpoint, endpoint_name


@pytest.fixture(autouse=True)
def no_user_config(tmp_path: Path, mocker: MagicMock) -> None:
    """Points the default config file at a path that does not exist."""
    mocker.patch("extrahop_backup.config.CONFIG_FILE", tmp_path / "absent.toml")


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with the stock run settings."""
    conf = BackupConfig.load(environ={})

    assert conf.branch == "master"
    assert conf.remote == "origin"
    assert conf.commit_message == "autoCommit"
    assert conf.clone_attempts == 3
    assert conf.git_dir == tempfile.gettempdir()
    assert conf.uses_temp_dir
    assert [e.filename for e in conf.endpoints] == [
        "runningconfig.json",
        "triggers.json",
        "auditlog.json",
    ]
    assert conf.endpoints[2].path == "auditlog?limit=999999&offset=0"


def test_config_is_immutable() -> None:
    """Verifies that the configuration cannot be modified after it is built."""
    conf = BackupConfig.load(environ={})
    with pytest.raises(dataclasses.FrozenInstanceError):
        conf.host = "https://elsewhere.example.com"  # type: ignore[misc]


def test_missing_reports_flags_in_order() -> None:
    """Verifies that `missing` names unset required flags in a stable order."""
    assert BackupConfig().missing() == ["-host", "-apikey", "-gitrepo"]
    assert BackupConfig(host="h", git_repo="r").missing() == ["-apikey"]
    assert BackupConfig(host="h", api_key="k", git_repo="r").missing() == []


def test_endpoint_name_strips_query() -> None:
    """Verifies that the query string is not part of the backup file name."""
    assert endpoint_name("auditlog?limit=999999&offset=0") == "auditlog"
    assert Endpoint.from_path("auditlog?limit=999999&offset=0").filename == (
        "auditlog.json"
    )
    assert endpoint_name("triggers") == "triggers"


def test_config_load_precedence(tmp_path: Path) -> None:
    """Verifies the cascading merge logic (Defaults -> File -> Env -> Flags).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[appliance]\n"
        'host = "https://from-file.example.com"\n'
        'api_key = "file-key"\n'
        "[git]\n"
        'repo = "git@example.com:ops/file.git"\n'
        'branch = "backups"\n'
    )

    conf = BackupConfig.load(
        overrides={"api_key": "flag-key", "git_repo": None},
        config_file=config_file,
        environ={"EXTRAHOP_HOST": "https://from-env.example.com"},
    )

    assert conf.host == "https://from-env.example.com"  # Env overrides file
    assert conf.api_key == "flag-key"  # Flag overrides file
    assert conf.git_repo == "git@example.com:ops/file.git"  # None flag ignored
    assert conf.branch == "backups"


def test_config_file_endpoints(tmp_path: Path) -> None:
    """Verifies that `[[endpoints]]` replaces the default endpoint list."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[[endpoints]]\n"
        'path = "/alerts?limit=10"\n'
        "[[endpoints]]\n"
        'name = "devgroups"\n'
        'path = "devicegroups"\n'
    )

    conf = BackupConfig.load(config_file=config_file, environ={})

    assert conf.endpoints == (
        Endpoint(name="alerts", path="alerts?limit=10"),
        Endpoint(name="devgroups", path="devicegroups"),
    )


def test_config_invalid_values_fall_back(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that bad values and unknown keys are logged and ignored."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[git]\nclone_attempts = 0\ncolour = 'blue'\n"
        "[appliance]\ntimeout = 'soon'\n"
        "[[endpoints]]\nname = 'nopath'\n"
    )

    conf = BackupConfig.load(config_file=config_file, environ={})

    assert conf.clone_attempts == 3
    assert conf.timeout == 60.0
    assert len(conf.endpoints) == 3
    assert "Config error in [git].clone_attempts" in caplog.text
    assert "Unknown config keys in [git]: colour" in caplog.text
    assert "Skipping endpoint without a path" in caplog.text


def test_config_syntax_error_uses_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a broken TOML file is reported and skipped."""
    config_file = tmp_path / "config.toml"
    config_file.write_text("[git\nrepo = ")

    conf = BackupConfig.load(config_file=config_file, environ={})

    assert conf.git_repo == ""
    assert "Config syntax error" in caplog.text


def test_explicit_missing_config_file_warns(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    BackupConfig.load(config_file=tmp_path / "nope.toml", environ={})
    assert "Config file not found" in caplog.text


def test_custom_git_dir_is_not_temp(tmp_path: Path) -> None:
    conf = BackupConfig.load(overrides={"git_dir": str(tmp_path)}, environ={})
    assert not conf.uses_temp_dir


def test_config_section_must_be_table(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a scalar where a table belongs is reported and skipped."""
    config_file = tmp_path / "config.toml"
    config_file.write_text('appliance = "eh01"\n[git]\nrepo = "r"\n')

    conf = BackupConfig.load(config_file=config_file, environ={})

    assert conf.host == ""
    assert conf.git_repo == "r"
    assert "[appliance] must be a table" in caplog.text
    assert "Unknown config keys" not in caplog.text


def test_config_verbose_requires_boolean(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text('[logging]\nverbose = "false"\n')

    conf = BackupConfig.load(config_file=config_file, environ={})

    assert conf.verbose is False
    assert "Config error in [logging].verbose" in caplog.text

    config_file.write_text("[logging]\nverbose = true\n")
    assert BackupConfig.load(config_file=config_file, environ={}).verbose is True
