"""Version metadata for the backup client.

`VERSION` is maintained by hand; the commit, branch and build date come from
`_build_info`, which the build helper rewrites before packaging a binary.
"""

import datetime
from dataclasses import dataclass

from . import _build_info

VERSION = "0.1.0"

UNKNOWN = "<unknown>"


@dataclass
class BuildVersion:
    """Version and build metadata.

    Attributes:
        version (str): Dotted release version.
        sha (str): Commit the binary was built from.
        date (str): UTC build time as `YYYYMMDDHHMMSS`.
        official (bool): Release build (explicit flag or `master` branch).
        branch (str): Branch the binary was built from.
    """

    version: str = VERSION
    sha: str = ""
    date: str = ""
    official: bool = False
    branch: str = ""

    @classmethod
    def current(cls) -> "BuildVersion":
        return cls(
            sha=_build_info.VERSION_SHA,
            date=_build_info.VERSION_DATE,
            official=_build_info.OFFICIAL_BUILD == "true",
            branch=_build_info.BUILD_BRANCH,
        )

    @property
    def major_minor(self) -> tuple[int, int]:
        """The first two numeric components of `version`, 0 if absent."""
        parts = self.version.split(".")
        numbers = []
        for part in parts[:2]:
            try:
                numbers.append(int(part))
            except ValueError:
                numbers.append(0)
        numbers.extend([0] * (2 - len(numbers)))
        return numbers[0], numbers[1]

    def built_at(self) -> str:
        if not self.date:
            return UNKNOWN
        try:
            stamp = datetime.datetime.strptime(self.date, "%Y%m%d%H%M%S")
        except ValueError:
            return self.date
        return stamp.strftime("%Y-%m-%d %H:%M:%S UTC")

    def describe(self, app: str) -> str:
        suffix = "" if self.official else "-dev"
        return (
            f"{app} version {self.version}{suffix} "
            f"(sha {self.sha or UNKNOWN}, branch {self.branch or UNKNOWN}, "
            f"built {self.built_at()})"
        )


def get_version_info(app: str) -> str:
    """Returns the one-line version string printed by `-version`."""
    return BuildVersion.current().describe(app)
