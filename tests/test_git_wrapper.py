import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from extrahop_backup.git_wrapper import GitError, GitRepo


def test_requires_git_directory(tmp_path: Path) -> None:
    """Verifies that GitRepo refuses a path without a .git directory."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_clone_is_shallow_and_multi_branch(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies the clone command line and that the checkout is wrapped."""
    mock_run = mocker.patch("subprocess.run")
    dest = tmp_path / "checkout"
    (dest / ".git").mkdir(parents=True)

    repo = GitRepo.clone("git@example.com:ops/backups.git", dest)

    args, kwargs = mock_run.call_args
    assert args[0] == [
        "git",
        "clone",
        "git@example.com:ops/backups.git",
        str(dest),
        "--depth=1",
        "--no-single-branch",
    ]
    assert kwargs["capture_output"] is True
    assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
    assert repo.path == dest


def test_run_raises_git_error(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that a failing git command surfaces as GitError with stderr."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            128, ["git", "add", "."], stderr="fatal: not a work tree"
        ),
    )

    with pytest.raises(GitError, match="fatal: not a work tree"):
        repo.add_all()


def test_missing_git_binary_raises_git_error(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("git"))

    with pytest.raises(GitError, match="could not run git"):
        repo.head_sha()


def test_commit_detects_nothing_to_commit(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that an unchanged tree is reported as 'no commit', not an error."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch(
        "subprocess.run",
        return_value=MagicMock(
            returncode=1,
            stdout="On branch master\nnothing to commit, working tree clean\n",
        ),
    )

    assert repo.commit("autoCommit") is False


def test_commit_success_and_failure(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch("subprocess.run")

    mock_run.return_value = MagicMock(
        returncode=0, stdout="[master 1a2b3c4] autoCommit\n 1 file changed\n"
    )
    assert repo.commit("autoCommit") is True
    assert mock_run.call_args[0][0] == ["git", "commit", "-m", "autoCommit"]

    mock_run.return_value = MagicMock(
        returncode=128, stdout="fatal: unable to auto-detect email address\n"
    )
    with pytest.raises(GitError, match="unable to auto-detect email"):
        repo.commit("autoCommit")


def test_push_sets_upstream(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that push targets the configured remote/branch with tracking."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run")

    repo.push("origin", "master")

    mock_run.assert_called_once_with(
        ["push", "--set-upstream", "origin", "master"],
        capture=True,
        env=mocker.ANY,
    )


def test_verbose_streams_output(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that verbose repos let git write to the terminal."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path, verbose=True)
    mock_run = mocker.patch.object(repo, "_run")

    repo.add_all()

    mock_run.assert_called_once_with(["add", "."], capture=False)


def test_rev_parse_helpers(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run", return_value="value")

    repo.head_sha()
    mock_run.assert_called_with(["rev-parse", "HEAD"])

    repo.current_branch()
    mock_run.assert_called_with(["rev-parse", "--abbrev-ref", "HEAD"])
