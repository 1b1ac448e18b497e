from pathlib import Path

"""Global constants and path definitions for extrahop-backup.

This module defines the application identity, the default configuration file
location, the wire-level constants used when talking to the appliance, and the
default set of endpoints exported on every run.
"""

# --- Identity ---
APP_NAME = "extrahop-backup"
"""str: The human-readable application name (also the logger name)."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/extrahop-backup"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The default configuration file path."""

# --- Environment ---
ENV_HOST = "EXTRAHOP_HOST"
ENV_API_KEY = "EXTRAHOP_APIKEY"
ENV_GIT_REPO = "EXTRAHOP_GITREPO"
ENV_GIT_DIR = "EXTRAHOP_GITDIR"

# --- Appliance API ---
API_PREFIX = "api/v1"
"""str: Path prefix for every appliance REST endpoint."""

USER_AGENT = "extrahop-backupclient(github.com/mhenderson-so/extrahop-backup)"
"""str: The User-Agent sent with every request."""

AUTH_SCHEME = "ExtraHop"
"""str: Scheme used in the Authorization header (`ExtraHop apikey=<key>`)."""

DEFAULT_ENDPOINTS: tuple[str, ...] = (
    "runningconfig",
    "triggers",
    "auditlog?limit=999999&offset=0",
)
"""tuple[str, ...]: Endpoint paths (relative to API_PREFIX) exported by default."""

# --- Git / Scratch Checkout ---
SCRATCH_SUFFIX = "ExtraHopBackup"
"""str: Prefix for temp checkouts, or suffix appended to a user-supplied gitdir."""

DEFAULT_BRANCH = "master"
DEFAULT_REMOTE = "origin"
DEFAULT_COMMIT_MESSAGE = "autoCommit"
DEFAULT_CLONE_ATTEMPTS = 3
DEFAULT_TIMEOUT = 60.0

NOTHING_TO_COMMIT = "nothing to commit"
"""str: Marker in `git commit` output meaning the snapshot was unchanged."""

# --- Logging ---
MAX_LOG_SIZE = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5
