"""Build helper that packages the backup client with version metadata.

This is not required to run the client, but it records the commit, branch,
build date and release status in `_build_info.py` before handing off to
PyInstaller, which a plain `pip install` does not do. On Windows it also
refreshes the `versioninfo.json` resource descriptor and turns it into a
PyInstaller version file.
"""

import argparse
import datetime
import json
import logging
import os
import subprocess
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console

from .cli import setup_logging
from .constants import APP_NAME
from .git_wrapper import GitError, GitRepo
from .version import BuildVersion

logger = logging.getLogger(APP_NAME)
console = Console()

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parents[1]
BUILD_INFO_FILE = PACKAGE_DIR / "_build_info.py"
VERSION_INFO_FILE = PROJECT_ROOT / "packaging" / "versioninfo.json"
WORK_DIR = PROJECT_ROOT / "build"

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclass
class BuildTarget:
    """A binary produced by the build.

    Attributes:
        dir_name (str): Package directory under `src/` holding `__main__.py`.
        binary_name (str): Name of the produced executable.
    """

    dir_name: str
    binary_name: str

    @property
    def entry_point(self) -> Path:
        return PROJECT_ROOT / "src" / self.dir_name / "__main__.py"


ALL_PROGS = [BuildTarget("extrahop_backup", "extrahop-backup")]
DRIVER_TESTS: list[BuildTarget] = []


@dataclass
class BuildInfo:
    """Metadata stamped into the build.

    Attributes:
        sha (str): Commit SHA.
        date (str): UTC build timestamp (`YYYYMMDDHHMMSS`).
        official (bool): Whether this is a release build.
        branch (str): Branch name.
    """

    sha: str
    date: str
    official: bool
    branch: str

    def as_version(self) -> BuildVersion:
        return BuildVersion(
            sha=self.sha, date=self.date, official=self.official, branch=self.branch
        )


def host_os() -> str:
    """Returns the running OS using the names accepted by `-os`."""
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def build_timestamp(now: datetime.datetime | None = None) -> str:
    """Formats `now` (default: current UTC time) as `YYYYMMDDHHMMSS`."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


def resolve_build_info(
    sha: str = "",
    branch: str = "",
    release: bool = False,
    repo: GitRepo | None = None,
    now: datetime.datetime | None = None,
) -> BuildInfo:
    """Collects the build metadata, asking git for anything not given.

    Args:
        sha (str): Commit to embed. Empty means `git rev-parse HEAD`.
        branch (str): Branch to embed. Empty means the current branch.
        release (bool): Force an official build.
        repo (GitRepo | None): Repository to query. Defaults to the project root.
        now (datetime.datetime | None): Build time. Defaults to now (UTC).

    Raises:
        GitError: If git cannot resolve the commit or branch.
        ValueError: If the project root is not a git repository.
    """
    if not sha or not branch:
        repo = repo or GitRepo(PROJECT_ROOT)
        sha = sha or repo.head_sha()
        branch = branch or repo.current_branch()

    return BuildInfo(
        sha=sha,
        date=build_timestamp(now),
        official=release or branch == "master",
        branch=branch,
    )


def render_build_info(info: BuildInfo) -> str:
    return (
        "# Stamped by `extrahop-backup-build`. "
        "Empty values mean an unstamped build.\n"
        f"VERSION_SHA = {info.sha!r}\n"
        f"VERSION_DATE = {info.date!r}\n"
        f"OFFICIAL_BUILD = {'true' if info.official else ''!r}\n"
        f"BUILD_BRANCH = {info.branch!r}\n"
    )


@contextmanager
def stamped_build_info(info: BuildInfo, path: Path = BUILD_INFO_FILE) -> Iterator[Path]:
    """Writes the build metadata module for the duration of the block.

    The original contents are restored afterwards so the working tree is not
    left modified.
    """
    original = path.read_text() if path.exists() else None
    path.write_text(render_build_info(info))
    try:
        yield path
    finally:
        if original is None:
            path.unlink(missing_ok=True)
        else:
            path.write_text(original)


def update_version_info(
    info: BuildInfo, binary_name: str, path: Path = VERSION_INFO_FILE
) -> dict[str, Any] | None:
    """Injects version numbers and the commit into the resource descriptor.

    The descriptor uses the goversioninfo JSON layout. It is optional: a
    missing or unreadable file just means no Windows version resource.

    Args:
        info (BuildInfo): The build metadata.
        binary_name (str): Name of the executable, recorded as OriginalFilename.
        path (Path): The descriptor to update in place.

    Returns:
        dict[str, Any] | None: The updated descriptor, or None if it could
        not be read or written.
    """
    try:
        data = json.loads(path.read_text())

        version = info.as_version()
        major, minor = version.major_minor
        if major > 0 or minor > 0:
            fixed = data.setdefault("FixedFileInfo", {})
            for key in ("FileVersion", "ProductVersion"):
                numbers = fixed.setdefault(key, {})
                numbers["Major"] = major
                numbers["Minor"] = minor

            strings = data.setdefault("StringFileInfo", {})
            strings["FileVersion"] = version.version
            strings["ProductVersion"] = info.sha
            strings["Comments"] = version.describe(binary_name)
            strings["OriginalFilename"] = binary_name

        path.write_text(json.dumps(data, indent=2) + "\n")
        return data
    except Exception as e:
        logger.debug(f"Skipping version resource ({path}): {e}")
        return None


def _version_numbers(numbers: dict[str, Any]) -> tuple[int, int, int, int]:
    return (
        int(numbers.get("Major", 0)),
        int(numbers.get("Minor", 0)),
        int(numbers.get("Patch", 0)),
        int(numbers.get("Build", 0)),
    )


def render_version_file(data: dict[str, Any]) -> str:
    """Converts a goversioninfo descriptor into a PyInstaller version file."""
    fixed = data.get("FixedFileInfo", {})
    strings = data.get("StringFileInfo", {})
    translation = data.get("VarFileInfo", {}).get("Translation", {})
    lang_id = translation.get("LangID", "0409")
    charset_id = translation.get("CharsetID", "04B0")

    entries = ",\n".join(
        f"          StringStruct({key!r}, {str(value)!r})"
        for key, value in strings.items()
        if value
    )

    return f"""# UTF-8
VSVersionInfo(
  ffi=FixedFileInfo(
    filevers={_version_numbers(fixed.get('FileVersion', {}))},
    prodvers={_version_numbers(fixed.get('ProductVersion', {}))},
    mask=0x3f,
    flags=0x0,
    OS=0x40004,
    fileType=0x1,
    subtype=0x0,
    date=(0, 0)
  ),
  kids=[
    StringFileInfo([
      StringTable(
        {lang_id + charset_id!r},
        [
{entries}
        ])
    ]),
    VarFileInfo([VarStruct('Translation', [{int(lang_id, 16)}, {int(charset_id, 16)}])])
  ]
)
"""


def ensure_pyinstaller() -> None:
    """Installs PyInstaller if `pyinstaller --version` prints nothing."""
    try:
        res = subprocess.run(["pyinstaller", "--version"], capture_output=True, text=True)
        found = res.stdout.strip()
    except OSError:
        found = ""

    if found:
        return

    console.print("[missing pyinstaller, attempting to install]", markup=False)
    res = subprocess.run(
        [sys.executable, "-m", "pip", "install", "pyinstaller"],
        capture_output=True,
        text=True,
    )
    console.print(res.stdout + res.stderr, markup=False, highlight=False)


def compile_target(
    target: BuildTarget, output: Path, version_file: Path | None = None
) -> None:
    """Runs PyInstaller for one target.

    Raises:
        subprocess.CalledProcessError: If PyInstaller fails.
    """
    name = target.binary_name.removesuffix(".exe")
    cmd = [
        "pyinstaller",
        "--onefile",
        "--noconfirm",
        "--name",
        name,
        "--distpath",
        str(output),
        "--workpath",
        str(WORK_DIR),
        "--specpath",
        str(WORK_DIR),
        "--paths",
        str(PROJECT_ROOT / "src"),
    ]
    if version_file:
        cmd.extend(["--version-file", str(version_file)])
    cmd.append(str(target.entry_point))

    subprocess.run(cmd, check=True)


def build_target(
    target: BuildTarget, info: BuildInfo, target_os: str, output: Path
) -> None:
    """Stamps metadata, prepares the version resource and compiles one target."""
    binary_name = target.binary_name
    version_file = None

    if target_os == "windows":
        binary_name += ".exe"
        if data := update_version_info(info, binary_name):
            try:
                WORK_DIR.mkdir(parents=True, exist_ok=True)
                version_file = WORK_DIR / f"{target.binary_name}-version.txt"
                version_file.write_text(render_version_file(data), encoding="utf-8")
            except Exception as e:
                logger.debug(f"Skipping version file: {e}")
                version_file = None

    ensure_pyinstaller()

    with stamped_build_info(info):
        console.print(f"building {output / binary_name} for {target_os}", markup=False)
        compile_target(
            BuildTarget(target.dir_name, binary_name), output, version_file
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"{APP_NAME}-build",
        description="Build extrahop-backup with version metadata embedded.",
    )
    parser.add_argument(
        "-sha", default="", help="SHA to embed. Omit to pull from current repository"
    )
    parser.add_argument(
        "-drivers",
        action="store_true",
        help="Only build Driver Test (not included in normal build).",
    )
    parser.add_argument("-os", dest="target_os", default=host_os(), help="OS to build for.")
    parser.add_argument(
        "-release",
        action="store_true",
        help="Release build. Used in -version info only.",
    )
    parser.add_argument(
        "-branch",
        default="",
        help="Branch name. Used in -version info only. "
        "Omit to pull from current repository.",
    )
    parser.add_argument(
        "-output",
        type=Path,
        default=Path(os.environ.get("DISTPATH", "dist")),
        help="Output directory",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for `extrahop-backup-build`."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=True)

    target_os = args.target_os.lower()
    if target_os != host_os():
        logger.warning(
            f"PyInstaller builds for the host OS ({host_os()}); "
            f"only naming and resources follow -os {target_os}."
        )

    try:
        info = resolve_build_info(args.sha, args.branch, args.release)
    except (GitError, ValueError) as e:
        logger.critical(f"Could not read build metadata from git: {e}")
        sys.exit(1)

    targets = DRIVER_TESTS if args.drivers else ALL_PROGS
    if not targets:
        logger.warning("No targets selected.")

    for target in targets:
        try:
            build_target(target, info, target_os, args.output)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.critical(f"Build failed for {target.binary_name}: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
