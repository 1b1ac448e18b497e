"""extrahop-backup: Versioned backups of ExtraHop appliance configuration.

This package provides the backup client, which exports configuration and
audit data from the appliance REST API into a git repository, and the build
helper that stamps version metadata into packaged binaries.
"""

from . import (
    api,
    backup,
    build,
    cli,
    config,
    constants,
    git_wrapper,
    system,
    version,
)

__all__ = [
    "api",
    "backup",
    "build",
    "cli",
    "config",
    "constants",
    "git_wrapper",
    "system",
    "version",
]
