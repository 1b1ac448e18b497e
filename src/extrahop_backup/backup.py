import logging
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .api import ApplianceClient, EndpointError
from .config import BackupConfig, Endpoint
from .constants import APP_NAME, SCRATCH_SUFFIX
from .git_wrapper import CloneError, GitError, GitRepo
from .system import SystemStrategy, remove_tree

logger = logging.getLogger(APP_NAME)

CloneFunc = Callable[..., GitRepo]
ClientFactory = Callable[[BackupConfig], ApplianceClient]


@dataclass
class BackupResult:
    """Outcome of a single backup run.

    Attributes:
        scratch_dir (Path | None): The checkout used for the run.
        written (list[Path]): Backup files written into the checkout.
        failed (dict[str, str]): Endpoint path -> reason, for endpoints that
            could not be fetched or written.
        pushed (bool): Whether a new commit was pushed.
        cleaned (bool): Whether the scratch directory was removed.
    """

    scratch_dir: Path | None = None
    written: list[Path] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    pushed: bool = False
    cleaned: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed


def prepare_scratch_dir(config: BackupConfig) -> Path:
    """Creates the directory the backup repository is cloned into.

    If `git_dir` is the OS temp dir (the default), a new uniquely named
    directory is created inside it. Otherwise the fixed suffix is appended
    to the configured path and the result is created if missing.

    Args:
        config (BackupConfig): The run configuration.

    Returns:
        Path: The scratch directory.
    """
    if config.uses_temp_dir:
        path = Path(tempfile.mkdtemp(prefix=SCRATCH_SUFFIX))
        logger.info(f"Setting temporary git checkout directory to {path}")
    else:
        path = Path(config.git_dir + SCRATCH_SUFFIX)
        path.mkdir(parents=True, exist_ok=True)
    return path


def clone_with_retry(
    config: BackupConfig, dest: Path, clone: CloneFunc = GitRepo.clone
) -> GitRepo:
    """Clones the backup repository, retrying up to `config.clone_attempts` times.

    Args:
        config (BackupConfig): The run configuration.
        dest (Path): The scratch directory.
        clone (CloneFunc, optional): Clone implementation. Defaults to
            `GitRepo.clone`.

    Returns:
        GitRepo: The cloned repository.

    Raises:
        CloneError: If every attempt failed.
    """
    attempts = config.clone_attempts
    last_error: GitError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return clone(config.git_repo, dest, verbose=config.verbose)
        except GitError as e:
            last_error = e
            logger.warning(f"Clone attempt {attempt}/{attempts} failed: {e}")

    logger.error(f"could not clone the repo: {config.git_repo}")
    raise CloneError(
        f"could not clone {config.git_repo} after {attempts} attempts"
    ) from last_error


def backup_endpoint(client: ApplianceClient, endpoint: Endpoint, dest: Path) -> Path:
    """Fetches one endpoint and writes it to `<dest>/<name>.json`.

    Raises:
        EndpointError: If the fetch, decode or write failed.
    """
    payload = client.fetch_json(endpoint.path)
    target = dest / endpoint.filename

    logger.info(f"Writing {endpoint.path} to {target}")
    try:
        target.write_bytes(payload.encode("utf-8"))
    except OSError as e:
        raise EndpointError(f"Could not write {target}: {e}") from e
    return target


def commit_and_push(repo: GitRepo, config: BackupConfig) -> bool:
    """Stages everything, commits, and pushes unless nothing changed.

    Returns:
        bool: True if a commit was pushed.

    Raises:
        GitError: If staging, committing or pushing failed.
    """
    repo.add_all()
    if not repo.commit(config.commit_message):
        logger.info("No changes detected, don't push")
        return False

    repo.push(config.remote, config.branch)
    logger.info(f"Pushed backup to {config.remote}/{config.branch}")
    return True


def run(
    config: BackupConfig,
    clone: CloneFunc = GitRepo.clone,
    client_factory: ClientFactory = ApplianceClient.from_config,
    system: SystemStrategy | None = None,
) -> BackupResult:
    """Runs one backup: clone, export every endpoint, commit, push, clean up.

    Endpoint failures are logged and collected in the result; the remaining
    endpoints still run and whatever was written is committed. Git failures
    are fatal and propagate. The scratch directory is removed exactly once
    in every case.

    Args:
        config (BackupConfig): The run configuration. Must be complete.
        clone (CloneFunc, optional): Clone implementation.
        client_factory (ClientFactory, optional): Builds the API client.
        system (SystemStrategy | None, optional): Platform strategy for cleanup.

    Returns:
        BackupResult: What was written, what failed, and whether it was pushed.

    Raises:
        CloneError: If the repository could not be cloned.
        GitError: If staging, committing or pushing failed.
    """
    result = BackupResult()
    result.scratch_dir = prepare_scratch_dir(config)

    try:
        repo = clone_with_retry(config, result.scratch_dir, clone)

        client = client_factory(config)
        try:
            for endpoint in config.endpoints:
                try:
                    path = backup_endpoint(client, endpoint, result.scratch_dir)
                    result.written.append(path)
                except EndpointError as e:
                    logger.error(f"BACKUP ERROR {endpoint.path}: {e}")
                    result.failed[endpoint.path] = str(e)
        finally:
            client.close()

        result.pushed = commit_and_push(repo, config)
    finally:
        result.cleaned = remove_tree(result.scratch_dir, system)

    return result
