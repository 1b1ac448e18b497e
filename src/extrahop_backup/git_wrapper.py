import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, NOTHING_TO_COMMIT

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """Raised when a git command exits with a non-zero status."""


class CloneError(GitError):
    """Raised when the backup repository could not be cloned."""


def _batch_env() -> dict[str, str]:
    """Environment for network operations that must never prompt."""
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
    return env


def _git(
    args: list[str],
    cwd: Path | None = None,
    capture: bool = True,
    env: dict | None = None,
) -> str:
    """Executes a git command and returns its stripped stdout.

    Args:
        args (list[str]): Arguments passed to `git`.
        cwd (Path | None): Working directory for the command.
        capture (bool): Whether to capture stdout/stderr. When False the
            output goes straight to the terminal and "" is returned.
        env (dict | None): Environment for the subprocess.

    Raises:
        GitError: If git is missing or exits non-zero.
    """
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
            env=env,
        )
        return res.stdout.strip() if capture else ""
    except subprocess.CalledProcessError as e:
        raise GitError(f"Git error: {e.stderr or e}") from e
    except OSError as e:
        raise GitError(f"Git error: could not run git: {e}") from e


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    The backup run only needs four capabilities (clone, stage, commit and
    push), so this is the seam where tests substitute a fake.

    Attributes:
        path (Path): The file system path to the repository root.
        verbose (bool): Whether git output is streamed to the terminal.
    """

    def __init__(self, path: Path, verbose: bool = False):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            verbose (bool, optional): Stream git output instead of capturing it.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.verbose = verbose
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command within the repository context."""
        return _git(args, cwd=self.path, capture=capture, env=env)

    @classmethod
    def clone(
        cls, url: str, dest: Path, depth: int = 1, verbose: bool = False
    ) -> "GitRepo":
        """Clones `url` into `dest` with shallow history but all branch tips.

        Args:
            url (str): The repository to clone.
            dest (Path): Target directory. Must be empty or absent.
            depth (int, optional): History depth. Defaults to 1.
            verbose (bool, optional): Stream git output. Defaults to False.

        Returns:
            GitRepo: A wrapper around the fresh checkout.
        """
        _git(
            ["clone", url, str(dest), f"--depth={depth}", "--no-single-branch"],
            capture=not verbose,
            env=_batch_env(),
        )
        return cls(dest, verbose=verbose)

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "."], capture=not self.verbose)

    def commit(self, message: str) -> bool:
        """Commits the staged changes.

        Args:
            message (str): The commit message.

        Returns:
            bool: True if a commit was created, False if there was nothing
            to commit.

        Raises:
            GitError: If the commit failed for any other reason.
        """
        try:
            res = subprocess.run(
                ["git", "commit", "-m", message],
                cwd=self.path,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise GitError(f"Git error: could not run git: {e}") from e

        output = res.stdout or ""
        if NOTHING_TO_COMMIT in output:
            return False
        if res.returncode != 0:
            raise GitError(f"Git error: could not commit: {output.strip()}")

        logger.info(output.strip())
        return True

    def push(self, remote: str, branch: str) -> None:
        """Pushes `branch` to `remote`, setting it as the upstream."""
        self._run(
            ["push", "--set-upstream", remote, branch],
            capture=not self.verbose,
            env=_batch_env(),
        )

    def rev_parse(self, *args: str) -> str:
        """Runs `git rev-parse` with the given arguments.

        Raises:
            GitError: If the revision cannot be resolved.
        """
        return self._run(["rev-parse", *args])

    def head_sha(self) -> str:
        return self.rev_parse("HEAD")

    def current_branch(self) -> str:
        return self.rev_parse("--abbrev-ref", "HEAD")
