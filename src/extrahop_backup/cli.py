import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import backup
from .config import BackupConfig
from .constants import APP_NAME, LOG_BACKUP_COUNT, MAX_LOG_SIZE
from .git_wrapper import GitError
from .version import get_version_info

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

MISSING_MESSAGES = {
    "-host": "ExtraHop -host has not been specified",
    "-apikey": "ExtraHop -apikey has not been specified",
    "-gitrepo": "Git -gitrepo has not been specified",
}


def setup_logging(verbose: bool, log_file: str | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): Log INFO and above when True, WARNING and above otherwise.
        log_file (str | None): If set, also log to this file with rotation.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    logger.handlers.clear()
    logger.setLevel(logging.INFO if verbose else logging.WARNING)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=MAX_LOG_SIZE,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the backup client.

    Flags use the single-dash form (`-host`); the double-dash spelling is
    accepted as well.
    """
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Back up ExtraHop configuration and audit data into a git repository.",
    )
    parser.add_argument(
        "-host",
        "--host",
        help="URL to the ExtraHop host. E.g. https://extrahop01.example.com.",
    )
    parser.add_argument(
        "-apikey",
        "--apikey",
        dest="api_key",
        help="Your API Key for the ExtraHop host.",
    )
    parser.add_argument(
        "-gitdir",
        "--gitdir",
        dest="git_dir",
        help="Optional. Directory to do a git clone into.",
    )
    parser.add_argument(
        "-gitrepo",
        "--gitrepo",
        dest="git_repo",
        help="Git repository to store backups into.",
    )
    parser.add_argument(
        "-v",
        "-version",
        "--version",
        dest="version",
        action="store_true",
        help="Print version information.",
    )
    parser.add_argument(
        "-verbose",
        "--verbose",
        action="store_true",
        default=None,
        help="Output verbose details.",
    )
    parser.add_argument(
        "-config",
        "--config",
        type=Path,
        help="Optional. TOML configuration file.",
    )
    return parser


def print_failures(result: backup.BackupResult) -> None:
    """Prints a table of the endpoints that were not backed up."""
    table = Table(title="Failed endpoints", title_justify="left")
    table.add_column("Endpoint", style="bold")
    table.add_column("Reason")
    for path, reason in result.failed.items():
        table.add_row(path, reason)
    err_console.print(table)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the backup client."""
    args = build_parser().parse_args(argv)

    if args.version:
        console.print(get_version_info(APP_NAME), highlight=False, soft_wrap=True)
        return

    config = BackupConfig.load(
        overrides={
            "host": args.host,
            "api_key": args.api_key,
            "git_dir": args.git_dir,
            "git_repo": args.git_repo,
            "verbose": args.verbose,
        },
        config_file=args.config,
    )

    # Missing settings abort the run without an error status.
    if missing := config.missing():
        err_console.print(MISSING_MESSAGES[missing[0]], highlight=False, soft_wrap=True)
        return

    setup_logging(config.verbose, config.log_file)

    try:
        result = backup.run(config)
    except (GitError, OSError) as e:
        logger.exception(f"FATAL: {e}")
        sys.exit(1)

    if result.failed:
        print_failures(result)
        sys.exit(1)

    if config.verbose:
        status = "pushed" if result.pushed else "no changes"
        console.print(
            f"[bold green]SUCCESS:[/bold green] Backed up "
            f"{len(result.written)} endpoint(s), {status}."
        )


if __name__ == "__main__":
    main()
