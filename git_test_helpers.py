"""Shared fixtures for the root-level test modules: throwaway git remotes,
helper clones, a recording status sink and a controllable clock."""

import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple
from unittest.mock import MagicMock

from mirrorsync.auto_sync import Clock
from mirrorsync.config import Config
from mirrorsync.git_sync.repository import VersionedRepository
from mirrorsync.git_sync.utils import create_git_sync_result
from mirrorsync.platform import get_git_executable
from mirrorsync.status import LogLevel, StatusSink, SyncState


def git(cwd: Path, *args: str, env: Optional[dict] = None, check: bool = True) -> str:
    """Run git in cwd and return stripped stdout."""
    result = subprocess.run(
        [get_git_executable(), *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=dict(os.environ, **(env or {})),
        check=check
    )
    return result.stdout.strip()


def create_bare_remote(temp_path: Path, name: str = "remote.git") -> str:
    """Create an empty bare repository whose default branch is main."""
    remote_dir = temp_path / name
    remote_dir.mkdir(parents=True)
    git(remote_dir, "init", "--bare")
    git(remote_dir, "symbolic-ref", "HEAD", "refs/heads/main")
    return str(remote_dir)


def clone_helper(remote: str, dest: Path) -> Path:
    """Clone remote into dest as an independent "other machine" checkout."""
    git(dest.parent, "clone", remote, str(dest))
    git(dest, "config", "user.name", "Other Machine")
    git(dest, "config", "user.email", "other@example.com")
    git(dest, "config", "commit.gpgsign", "false")
    git(dest, "symbolic-ref", "HEAD", "refs/heads/main")
    return dest


def commit_file(
    worktree: Path,
    rel_path: str,
    content: bytes,
    message: str = "update",
    timestamp: Optional[int] = None,
    push: bool = True
) -> str:
    """Write, commit and (optionally) push one file from a helper clone."""
    target = worktree / rel_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    env = None
    if timestamp is not None:
        date = f"{timestamp} +0000"
        env = {"GIT_AUTHOR_DATE": date, "GIT_COMMITTER_DATE": date}
    git(worktree, "add", "-A")
    git(worktree, "commit", "-m", message, env=env)
    if push:
        git(worktree, "push", "origin", "main")
    return git(worktree, "rev-parse", "HEAD")


def binary_blob(marker: bytes, size: int) -> bytes:
    """Content git treats as binary (contains NUL bytes), exactly size bytes long."""
    return (marker + b"\x00") * (size // (len(marker) + 1)) + b"\x00" * (size % (len(marker) + 1))


def seed_remote(temp_path: Path, remote: str, files: dict) -> None:
    """Push an initial commit containing files to an empty remote."""
    seeder = clone_helper(remote, temp_path / "seeder")
    for rel_path, content in files.items():
        target = seeder / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    git(seeder, "add", "-A")
    git(seeder, "commit", "-m", "Seed")
    git(seeder, "push", "origin", "main")


def remote_head(remote: str, branch: str = "main") -> str:
    return git(Path(remote), "rev-parse", branch)


def remote_subject(remote: str, branch: str = "main") -> str:
    return git(Path(remote), "log", "-1", "--format=%s", branch)


def remote_file_size(remote: str, rel_path: str, branch: str = "main") -> int:
    return int(git(Path(remote), "cat-file", "-s", f"{branch}:{rel_path}"))


def make_repository(temp_path: Path, remote: str, name: str = "working") -> VersionedRepository:
    """Build and initialize a VersionedRepository against remote."""
    repository = VersionedRepository(
        temp_path / name,
        remote,
        user_name="Test Machine",
        user_email="test@example.com"
    )
    result = repository.initialize()
    assert result.success, result.message
    git(repository.repo_path, "config", "commit.gpgsign", "false")
    return repository


def make_config(temp_path: Path, remote: Optional[str], prefix: str = "") -> Config:
    """Config with source and working directories under temp_path."""
    source_dir = temp_path / f"{prefix}source"
    source_dir.mkdir(parents=True, exist_ok=True)
    return Config(
        remote_url=remote,
        source_dir=source_dir,
        repo_dir=temp_path / f"{prefix}working",
        auto_sync=False,
        git_user_name="Test Machine",
        git_user_email="test@example.com"
    )


def ok(operation: str = "op", output: Optional[str] = None, error_code: Optional[str] = None):
    return create_git_sync_result(True, f"{operation} completed", operation, output=output, error_code=error_code)


def failed(message: str, operation: str = "op"):
    return create_git_sync_result(False, message, operation, error_code="GIT_COMMAND_FAILED")


def mock_repository(repo_path: Path) -> MagicMock:
    """A VersionedRepository stand-in whose primitives all succeed with a clean tree."""
    repository = MagicMock(spec=VersionedRepository)
    repository.repo_path = repo_path
    repository.remote_ref = "origin/main"
    repository.repository_identifier = "https://example.com/owner/repo.git"
    repository.stage_all.return_value = ok("stage")
    repository.commit.return_value = ok("commit", error_code="NOTHING_TO_COMMIT")
    repository.push.return_value = ok("push")
    repository.fetch.return_value = ok("fetch")
    repository.pending_change_count.return_value = 0
    repository.last_commit_date.return_value = None
    repository.head_commit.return_value = None
    repository.changed_paths.return_value = ([], 0)
    repository.reset.return_value = ok("reset")
    repository.stash_paths.return_value = []
    repository.stash_drop.return_value = ok("stash_drop")
    return repository


class RecordingSink(StatusSink):
    """Status sink that keeps everything it receives."""

    def __init__(self):
        self.states: List[SyncState] = []
        self.logs: List[Tuple[str, LogLevel]] = []
        self.countdowns: List[int] = []

    def on_status(self, state: SyncState) -> None:
        self.states.append(state)

    def on_log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.logs.append((message, level))

    def on_countdown(self, seconds: int) -> None:
        self.countdowns.append(seconds)


class FakeClock(Clock):
    def __init__(self, start: float = 1_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds
