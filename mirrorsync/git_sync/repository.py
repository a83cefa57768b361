"""Operational wrapper around the local working copy using GitPython."""

import logging
import os
import re
import shutil
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from git import Repo, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..credentials import build_authenticated_url
from ..platform import get_git_executable, get_platform_specific_git_config
from .repository_info import RepositoryHealth
from .utils import GitSyncResult, create_git_sync_result

REMOTE_NAME = "origin"
STASH_MESSAGE = "mirrorsync-temp"
STASH_REF = "stash@{0}"
LOCK_FILE_NAME = "index.lock"
README_CONTENT = "# Mirror Sync\n\nSynchronized directory mirror.\n"

_NOTHING_TO_COMMIT_MARKERS = ("nothing to commit", "nothing added to commit")
_STATUS_LINE = re.compile(r"^\s*\S{1,2}\s+(.*)$")


def _clean_stream(text: Optional[str]) -> str:
    """Strip GitPython's "stderr: '...'" decoration from a captured stream."""
    text = (text or "").strip()
    for prefix in ("stderr: '", "stdout: '"):
        if text.startswith(prefix):
            text = text[len(prefix):]
            if text.endswith("'"):
                text = text[:-1]
    return text.strip()


def format_command_error(error: GitCommandError) -> str:
    """Return the tool's own message for a failed git command."""
    parts = [_clean_stream(error.stderr), _clean_stream(error.stdout)]
    message = "\n".join(part for part in parts if part)
    return message or str(error)


def parse_status_paths(porcelain: str) -> List[str]:
    """Extract paths from `git status --porcelain` output."""
    paths = []
    for line in porcelain.splitlines():
        match = _STATUS_LINE.match(line)
        if not match:
            continue
        path = match.group(1)
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        paths.append(path.strip('"'))
    return paths


class VersionedRepository:
    """
    Thin wrapper around one working copy bound to one remote.

    Every primitive returns a GitSyncResult instead of raising, carrying the
    git tool's message on failure so callers can classify it. Git invocations
    are serialized through a per-instance lock: no two commands ever run
    against the same working directory at once.
    """

    def __init__(
        self,
        repo_path: Path,
        remote_url: str,
        token: Optional[str] = None,
        branch: str = "main",
        timeout: Optional[float] = 120.0,
        user_name: str = "Mirror Sync",
        user_email: str = "sync@mirrorsync.local"
    ):
        """
        Initialize the repository handle.

        Args:
            repo_path: Local working directory
            remote_url: Remote URL as configured, without credentials
            token: Optional access token injected into HTTPS remotes
            branch: Tracked branch on the remote
            timeout: Seconds after which network commands are killed
            user_name: Commit author name written to the local git config
            user_email: Commit author email written to the local git config
        """
        self.repo_path = Path(repo_path)
        self.git_dir = self.repo_path / ".git"
        self.remote_url = remote_url
        self.branch = branch
        self.timeout = timeout
        self.user_name = user_name
        self.user_email = user_email
        self._auth_url = build_authenticated_url(remote_url, token) if token else remote_url
        self._lock = threading.RLock()
        self._repo: Optional[Repo] = None
        self.logger = logging.getLogger('mirrorsync.git_sync.repository')

    @property
    def remote_ref(self) -> str:
        """Remote-tracking ref of the tracked branch."""
        return f"{REMOTE_NAME}/{self.branch}"

    @property
    def repository_identifier(self) -> str:
        """Remote URL as configured, never including the token."""
        return self.remote_url

    @property
    def repo(self) -> Repo:
        if self._repo is None:
            self._repo = Repo(self.repo_path)
        return self._repo

    def _network_kwargs(self) -> dict:
        return {"kill_after_timeout": self.timeout} if self.timeout else {}

    def _run(self, operation: str, func: Callable[[], Any]) -> GitSyncResult:
        """Execute one git call under the lock and wrap the outcome."""
        with self._lock:
            try:
                output = func()
            except GitCommandError as e:
                message = format_command_error(e)
                self.logger.debug(f"{operation} failed: {message}")
                return create_git_sync_result(
                    success=False,
                    message=message,
                    operation=operation,
                    error_code="GIT_COMMAND_FAILED"
                )
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                message = f"not a git repository: {e}"
                self.logger.debug(f"{operation} failed: {message}")
                return create_git_sync_result(
                    success=False,
                    message=message,
                    operation=operation,
                    error_code="INVALID_GIT_REPOSITORY"
                )
            except OSError as e:
                message = f"{operation} failed: {e}"
                self.logger.debug(message)
                return create_git_sync_result(
                    success=False,
                    message=message,
                    operation=operation,
                    error_code="GIT_IO_ERROR"
                )

        self.logger.debug(f"{operation} completed")
        return create_git_sync_result(
            success=True,
            message=f"{operation} completed",
            operation=operation,
            output=output if isinstance(output, str) else None
        )

    # Setup

    def is_repository(self) -> bool:
        """Check whether the working directory is already a git repository."""
        if not self.git_dir.exists():
            return False
        try:
            Repo(self.repo_path)
            return True
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def initialize(self, token: Optional[str] = None) -> GitSyncResult:
        """
        Clone the remote into an empty working directory, or adopt an
        existing one.

        - Existing repository: the origin URL is refreshed.
        - Directory with files but no .git: init, add origin, fetch, and
          hard-reset onto the tracked branch when the remote has it.
        - Empty directory: clone. Cloning an empty remote leaves an unborn
          HEAD, which gets a README initial commit.

        Args:
            token: Access token replacing the one given at construction

        Returns:
            GitSyncResult indicating success or failure
        """
        with self._lock:
            if token:
                self._auth_url = build_authenticated_url(self.remote_url, token)
            self.repo_path.mkdir(parents=True, exist_ok=True)

            if self.is_repository():
                self.logger.info(f"Adopting existing repository at {self.repo_path}")
                result = self._run("set_remote_url", self._ensure_origin)
            elif any(self.repo_path.iterdir()):
                self.logger.info(f"Initializing repository over existing files in {self.repo_path}")
                result = self._adopt_directory()
            else:
                self.logger.info(f"Cloning {self.repository_identifier} into {self.repo_path}")
                result = self._clone()

            if not result.success:
                return result

            configure_result = self._run("configure", self._configure)
            if not configure_result.success:
                return configure_result

            return create_git_sync_result(
                success=True,
                message=f"Repository ready at {self.repo_path}",
                operation="initialize"
            )

    def _ensure_origin(self) -> str:
        try:
            origin = self.repo.remote(REMOTE_NAME)
            if list(origin.urls) != [self._auth_url]:
                origin.set_url(self._auth_url)
                return "updated"
            return "already_configured"
        except ValueError:
            self.repo.create_remote(REMOTE_NAME, self._auth_url)
            return "added"

    def _point_head_at_branch(self) -> None:
        self.repo.git.symbolic_ref("HEAD", f"refs/heads/{self.branch}")

    def _remote_branch_exists(self) -> bool:
        try:
            self.repo.git.rev_parse("--verify", "--quiet", self.remote_ref)
            return True
        except GitCommandError:
            return False

    def _adopt_directory(self) -> GitSyncResult:
        def adopt():
            self._repo = Repo.init(self.repo_path)
            self._point_head_at_branch()
            self._ensure_origin()

        result = self._run("init", adopt)
        if not result.success:
            return result

        fetch_result = self.fetch()
        if not fetch_result.success:
            # The remote may be empty or offline; the first push publishes the files
            self.logger.warning(f"Initial fetch failed, continuing with local files: {fetch_result.message}")
            return create_git_sync_result(True, "Repository initialized locally", "init")

        if self._remote_branch_exists():
            return self.reset(self.remote_ref, hard=True)
        return create_git_sync_result(True, "Repository initialized, remote is empty", "init")

    def _clone(self) -> GitSyncResult:
        def clone():
            self._repo = Repo.clone_from(self._auth_url, self.repo_path)

        result = self._run("clone", clone)
        if not result.success:
            return result

        def settle_branch():
            has_history = self._remote_branch_exists()
            self._point_head_at_branch()
            if has_history:
                self.repo.git.reset("--hard", self.remote_ref)
                return "tracking"
            if not self.repo.head.is_valid():
                # Empty remote: establish HEAD with an initial commit
                (self.repo_path / "README.md").write_text(README_CONTENT, encoding="utf-8")
                self.repo.git.add("README.md")
                self._commit_with_identity("Initial commit")
                return "initial_commit"
            return "unchanged"

        return self._run("settle_branch", settle_branch)

    def _commit_with_identity(self, message: str) -> None:
        self.repo.git.execute([
            get_git_executable(),
            "-c", f"user.name={self.user_name}",
            "-c", f"user.email={self.user_email}",
            "commit", "-m", message
        ])

    def _configure(self) -> None:
        with self.repo.config_writer() as writer:
            writer.set_value("user", "name", self.user_name)
            writer.set_value("user", "email", self.user_email)
            for key, value in get_platform_specific_git_config().items():
                section, option = key.split(".", 1)
                writer.set_value(section, option, value)

    def destroy(self) -> None:
        """Remove the working copy entirely."""
        with self._lock:
            self.close()
            if self.repo_path.exists():
                shutil.rmtree(self.repo_path)
                self.logger.info(f"Removed working directory {self.repo_path}")

    def close(self) -> None:
        """Release GitPython's persistent helper processes."""
        with self._lock:
            if self._repo is not None:
                self._repo.close()
                self._repo = None

    # Primitives

    def stage_all(self) -> GitSyncResult:
        return self._run("stage", lambda: self.repo.git.add("-A"))

    def commit(self, message: str) -> GitSyncResult:
        """
        Commit staged changes.

        Returns:
            GitSyncResult whose output is the new commit id. A clean tree is a
            success with error_code NOTHING_TO_COMMIT and no output.
        """
        with self._lock:
            status = self._run("status", lambda: self.repo.git.status("--porcelain"))
            if status.success and not status.output:
                return create_git_sync_result(
                    success=True,
                    message="nothing to commit",
                    operation="commit",
                    error_code="NOTHING_TO_COMMIT"
                )

            result = self._run("commit", lambda: self.repo.git.commit("-m", message))
            if not result.success:
                if any(marker in result.message.lower() for marker in _NOTHING_TO_COMMIT_MARKERS):
                    return create_git_sync_result(
                        success=True,
                        message="nothing to commit",
                        operation="commit",
                        error_code="NOTHING_TO_COMMIT"
                    )
                return result

            return self._run("commit", lambda: self.repo.head.commit.hexsha)

    def push(self, force: bool = False) -> GitSyncResult:
        args = ["--set-upstream"]
        if force:
            args.append("--force")
        return self._run(
            "force_push" if force else "push",
            lambda: self.repo.git.push(*args, REMOTE_NAME, self.branch, **self._network_kwargs())
        )

    def fetch(self) -> GitSyncResult:
        return self._run("fetch", lambda: self.repo.git.fetch(REMOTE_NAME, **self._network_kwargs()))

    def pull(self, rebase: bool = True) -> GitSyncResult:
        args = ["--rebase"] if rebase else ["--no-rebase"]
        return self._run(
            "pull",
            lambda: self.repo.git.pull(REMOTE_NAME, self.branch, *args, **self._network_kwargs())
        )

    def stash_push(self) -> GitSyncResult:
        return self._run(
            "stash_push",
            lambda: self.repo.git.stash("push", "--include-untracked", "-m", STASH_MESSAGE)
        )

    def stash_pop(self) -> GitSyncResult:
        return self._run("stash_pop", lambda: self.repo.git.stash("pop"))

    def stash_drop(self) -> GitSyncResult:
        return self._run("stash_drop", lambda: self.repo.git.stash("drop"))

    def stash_paths(self, ref: str = STASH_REF) -> List[str]:
        """Tracked and untracked paths recorded in a stash entry."""
        tracked = self._run("stash_paths", lambda: self.repo.git.diff("--name-only", f"{ref}^1", ref))
        # The third parent only exists when untracked files were stashed
        untracked = self._run(
            "stash_paths", lambda: self.repo.git.ls_tree("-r", "--name-only", f"{ref}^3")
        )
        paths = []
        for result in (tracked, untracked):
            if result.success and result.output:
                paths.extend(line for line in result.output.splitlines() if line)
        return list(dict.fromkeys(paths))

    def stash_content(self, path: str, ref: str = STASH_REF) -> Optional[bytes]:
        """Content of a path as stashed, None if the stash deleted it."""
        content = self.show(path, ref)
        if content is None:
            content = self.show(path, f"{ref}^3")
        return content

    def write_file(self, path: str, content: bytes, mtime: Optional[float] = None) -> None:
        """Write content into the working tree, restoring mtime when given."""
        with self._lock:
            target = self.repo_path / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            if mtime:
                os.utime(target, (mtime, mtime))

    def abort_rebase(self) -> GitSyncResult:
        return self._run("rebase_abort", lambda: self.repo.git.rebase("--abort"))

    def abort_merge(self) -> GitSyncResult:
        return self._run("merge_abort", lambda: self.repo.git.merge("--abort"))

    def reset(self, ref: str = "HEAD", hard: bool = True) -> GitSyncResult:
        mode = "--hard" if hard else "--mixed"
        return self._run("reset", lambda: self.repo.git.reset(mode, ref))

    def diff_names(self, from_ref: str, to_ref: str) -> GitSyncResult:
        """Paths differing between two refs (`diff --name-only` semantics)."""
        return self._run("diff", lambda: self.repo.git.diff("--name-only", from_ref, to_ref))

    def checkout_path(self, path: str, ref: str) -> GitSyncResult:
        return self._run("checkout_path", lambda: self.repo.git.checkout(ref, "--", path))

    def show(self, path: str, ref: str) -> Optional[bytes]:
        """Raw content of a path at a ref, or None if it does not exist there."""
        with self._lock:
            try:
                return self.repo.git.show(
                    f"{ref}:{path}", stdout_as_string=False, strip_newline_in_stdout=False
                )
            except GitCommandError:
                return None

    def file_size_at(self, path: str, ref: str) -> int:
        """Size in bytes of a path at a ref, 0 if it does not exist there."""
        result = self._run("cat_file", lambda: self.repo.git.cat_file("-s", f"{ref}:{path}"))
        if not result.success or not result.output:
            return 0
        try:
            return int(result.output.strip())
        except ValueError:
            return 0

    def log_timestamps(self, path: str, ref: str, limit: int = 1) -> List[float]:
        """Commit timestamps (newest first) of changes to a path reachable from ref."""
        result = self._run(
            "log",
            lambda: self.repo.git.log(f"-{limit}", "--format=%ct", ref, "--", path)
        )
        if not result.success or not result.output:
            return []
        timestamps = []
        for line in result.output.splitlines():
            line = line.strip()
            if line.isdigit():
                timestamps.append(float(line))
        return timestamps

    def last_change_timestamp(self, path: str, ref: str) -> float:
        """Time of the most recent commit touching path at ref, 0 if none."""
        timestamps = self.log_timestamps(path, ref, limit=1)
        return timestamps[0] if timestamps else 0.0

    def remove_stale_lock(self) -> bool:
        """
        Delete index.lock left behind by a crashed git process.

        Returns:
            True if a lock file was removed
        """
        with self._lock:
            lock_path = self.git_dir / LOCK_FILE_NAME
            if not lock_path.exists():
                return False
            try:
                lock_path.unlink()
            except FileNotFoundError:
                return False
            self.logger.warning(f"Removed stale lock file: {lock_path}")
            return True

    def raw(self, *args: str) -> GitSyncResult:
        """Escape hatch: run an arbitrary git command in the working directory."""
        return self._run(
            args[0] if args else "raw",
            lambda: self.repo.git.execute([get_git_executable(), *args])
        )

    # Queries

    def health(self) -> RepositoryHealth:
        """Classify the working directory state."""
        with self._lock:
            if (self.git_dir / LOCK_FILE_NAME).exists():
                return RepositoryHealth.LOCKED

            in_progress = any(
                (self.git_dir / marker).exists()
                for marker in ("rebase-merge", "rebase-apply", "MERGE_HEAD")
            )
            unmerged = self._run(
                "unmerged_paths", lambda: self.repo.git.diff("--name-only", "--diff-filter=U")
            )
            if in_progress or not unmerged.success or unmerged.output:
                return RepositoryHealth.CONFLICTED

            status = self._run("status", lambda: self.repo.git.status("--porcelain"))
            if not status.success:
                return RepositoryHealth.CONFLICTED
            if status.output:
                return RepositoryHealth.DIRTY
            return RepositoryHealth.CLEAN

    def changed_paths(self, limit: Optional[int] = None) -> Tuple[List[str], int]:
        """
        Paths with uncommitted changes.

        Returns:
            Tuple of (first `limit` paths, total count)
        """
        result = self._run(
            "status", lambda: self.repo.git.status("--porcelain", "--untracked-files=all")
        )
        if not result.success or not result.output:
            return [], 0
        paths = parse_status_paths(result.output)
        return (paths[:limit] if limit is not None else paths), len(paths)

    def pending_change_count(self) -> int:
        return self.changed_paths()[1]

    def ahead_behind(self) -> Tuple[int, int]:
        """Commits ahead of and behind the remote-tracking branch, (0, 0) if unknown."""
        result = self._run(
            "rev_list",
            lambda: self.repo.git.rev_list("--left-right", "--count", f"HEAD...{self.remote_ref}")
        )
        if not result.success or not result.output:
            return 0, 0
        try:
            ahead, behind = result.output.split()
            return int(ahead), int(behind)
        except ValueError:
            return 0, 0

    def head_commit(self) -> Optional[str]:
        """Commit id of HEAD, None if there is no commit yet."""
        result = self._run("rev_parse", lambda: self.repo.git.rev_parse("--verify", "HEAD"))
        return result.output.strip() if result.success and result.output else None

    def last_commit_date(self) -> Optional[str]:
        """ISO 8601 committer date of HEAD, None if there is no commit yet."""
        result = self._run("log", lambda: self.repo.git.log("-1", "--format=%cI"))
        if not result.success or not result.output:
            return None
        return result.output.strip()
