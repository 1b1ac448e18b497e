import logging
import os
import tempfile
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_CLONE_ATTEMPTS,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_ENDPOINTS,
    DEFAULT_REMOTE,
    DEFAULT_TIMEOUT,
    ENV_API_KEY,
    ENV_GIT_DIR,
    ENV_GIT_REPO,
    ENV_HOST,
)

logger = logging.getLogger(APP_NAME)

# TOML section -> {key in file: BackupConfig field}
FILE_SECTIONS: dict[str, dict[str, str]] = {
    "appliance": {"host": "host", "api_key": "api_key", "timeout": "timeout"},
    "git": {
        "repo": "git_repo",
        "dir": "git_dir",
        "branch": "branch",
        "remote": "remote",
        "commit_message": "commit_message",
        "clone_attempts": "clone_attempts",
    },
    "logging": {"file": "log_file", "verbose": "verbose"},
}

ENV_FIELDS: dict[str, str] = {
    "host": ENV_HOST,
    "api_key": ENV_API_KEY,
    "git_repo": ENV_GIT_REPO,
    "git_dir": ENV_GIT_DIR,
}


def endpoint_name(path: str) -> str:
    """Derives the backup file base name from an endpoint path.

    Everything from the first `?` onwards is dropped, so
    `auditlog?limit=999999&offset=0` becomes `auditlog`.
    """
    return path.split("?", 1)[0]


@dataclass(frozen=True)
class Endpoint:
    """A single appliance REST endpoint to export.

    Attributes:
        name (str): Base name of the output file (`<name>.json`).
        path (str): Path and query string relative to `/api/v1/`.
    """

    name: str
    path: str

    @classmethod
    def from_path(cls, path: str) -> "Endpoint":
        return cls(name=endpoint_name(path), path=path)

    @property
    def filename(self) -> str:
        return f"{self.name}.json"


def _positive_int(value: Any) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"must be at least 1, got {value!r}")
    return number


def _positive_float(value: Any) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"must be positive, got {value!r}")
    return number


def _strict_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"must be true or false, got {value!r}")
    return value


_PARSERS = {
    "clone_attempts": _positive_int,
    "timeout": _positive_float,
    "verbose": _strict_bool,
}


@dataclass(frozen=True)
class BackupConfig:
    """Immutable run configuration, built once at startup.

    Attributes:
        host (str): Base URL of the appliance, e.g. `https://extrahop01.example.com`.
        api_key (str): API key sent in the Authorization header.
        git_repo (str): URL of the repository receiving the backups.
        git_dir (str): Where to check the repository out. The OS temp dir
            (the default) means a fresh, uniquely named temp directory.
        verbose (bool): Enable diagnostic logging and git output.
        endpoints (tuple[Endpoint, ...]): Endpoints exported on every run.
        branch (str): Branch pushed to.
        remote (str): Remote pushed to.
        commit_message (str): Message used for the backup commit.
        clone_attempts (int): Total number of clone attempts before giving up.
        timeout (float): HTTP timeout in seconds for each request.
        log_file (str | None): Optional path of a rotating log file.
    """

    host: str = ""
    api_key: str = ""
    git_repo: str = ""
    git_dir: str = field(default_factory=tempfile.gettempdir)
    verbose: bool = False
    endpoints: tuple[Endpoint, ...] = tuple(
        Endpoint.from_path(p) for p in DEFAULT_ENDPOINTS
    )
    branch: str = DEFAULT_BRANCH
    remote: str = DEFAULT_REMOTE
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    clone_attempts: int = DEFAULT_CLONE_ATTEMPTS
    timeout: float = DEFAULT_TIMEOUT
    log_file: str | None = None

    def missing(self) -> list[str]:
        """Returns the command-line flags of required settings that are unset."""
        required = [
            ("-host", self.host),
            ("-apikey", self.api_key),
            ("-gitrepo", self.git_repo),
        ]
        return [flag for flag, value in required if not value]

    @property
    def uses_temp_dir(self) -> bool:
        return os.path.normpath(self.git_dir) == os.path.normpath(
            tempfile.gettempdir()
        )

    @classmethod
    def load(
        cls,
        overrides: Mapping[str, Any] | None = None,
        config_file: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "BackupConfig":
        """Builds the configuration from defaults, file, environment and flags.

        Later sources win: defaults < config file < environment < overrides.
        `None` values in `overrides` are treated as "not given".

        Args:
            overrides (Mapping[str, Any] | None): Values from the command line,
                keyed by field name.
            config_file (Path | None): TOML file to read. Defaults to
                `~/.config/extrahop-backup/config.toml` if it exists.
            environ (Mapping[str, str] | None): Environment to read.
                Defaults to `os.environ`.

        Returns:
            BackupConfig: The merged, frozen configuration.
        """
        values: dict[str, Any] = {}

        path = config_file or CONFIG_FILE
        if path.exists():
            values.update(cls._read_file(path))
        elif config_file is not None:
            logger.warning(f"Config file not found: {config_file}")

        env = os.environ if environ is None else environ
        for key, var in ENV_FIELDS.items():
            if env.get(var):
                values[key] = env[var]

        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        return replace(cls(), **values)

    @classmethod
    def _read_file(cls, path: Path) -> dict[str, Any]:
        """Parses a TOML config file into BackupConfig field values.

        Syntax errors and invalid values are logged; the offending file or
        key is skipped and defaults apply.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return {}
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}

        values: dict[str, Any] = {}

        unknown_sections = set(data) - set(FILE_SECTIONS) - {"endpoints"}
        if unknown_sections:
            logger.warning(
                f"Unknown config sections in {path}: "
                f"{', '.join(sorted(unknown_sections))}. Ignoring."
            )

        for section, mapping in FILE_SECTIONS.items():
            updates = data.get(section, {})
            if not isinstance(updates, dict):
                logger.warning(
                    f"Config error in {path}: [{section}] must be a table, "
                    f"got {type(updates).__name__}. Ignoring."
                )
                continue
            invalid_keys = set(updates) - set(mapping)
            if invalid_keys:
                logger.warning(
                    f"Unknown config keys in [{section}]: "
                    f"{', '.join(sorted(invalid_keys))}. Ignoring."
                )
            for key, value in updates.items():
                if key not in mapping:
                    continue
                field_name = mapping[key]
                parser = _PARSERS.get(field_name, str)
                try:
                    values[field_name] = parser(value)
                except (TypeError, ValueError) as e:
                    logger.warning(
                        f"Config error in [{section}].{key}: {e}. "
                        "Falling back to default."
                    )

        if "endpoints" in data:
            endpoints = cls._parse_endpoints(data["endpoints"])
            if endpoints:
                values["endpoints"] = endpoints
            else:
                logger.warning(
                    f"No valid [[endpoints]] in {path}. Using the default list."
                )

        return values

    @staticmethod
    def _parse_endpoints(entries: Any) -> tuple[Endpoint, ...]:
        if not isinstance(entries, list):
            return ()

        endpoints = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("path"):
                logger.warning(f"Skipping endpoint without a path: {entry!r}")
                continue
            path = str(entry["path"]).lstrip("/")
            name = str(entry.get("name") or endpoint_name(path))
            endpoints.append(Endpoint(name=name, path=path))
        return tuple(endpoints)
