"""Top-level sequencing of push, pull and full sync runs."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .auto_sync import AutoSyncController, Clock, SystemClock
from .config import Config, DEFAULT_GIT_USER_EMAIL, DEFAULT_GIT_USER_NAME
from .credentials import TokenProvider, default_providers, resolve_token, verify_access
from .errors import ConfigurationError, NotInitializedError, SyncError
from .file_filter import DirectoryFileFilter, FileFilter
from .git_sync.error_strategies import Classifier, classify_failure, error_for_failure
from .git_sync.performance_logger import PerformanceLogger
from .git_sync.pull import PullProtocol
from .git_sync.repository import VersionedRepository
from .git_sync.utils import GitSyncResult
from .mirror import copy_from_working_copy, copy_into_working_copy
from .status import (
    DetailedStatus, LoggingStatusSink, LogLevel, StatusSink, SyncState, SyncStatus
)

DETAILED_STATUS_PATH_LIMIT = 10


def sync_commit_message(when: datetime) -> str:
    """Commit message for a regular sync commit."""
    return f"Sync: {when.strftime('%Y-%m-%dT%H:%M:%S.')}{when.microsecond // 1000:03d}Z"


class SyncOrchestrator:
    """
    Owns push, pull and full-sync runs against one remote.

    At most one full sync runs at a time: a sync() arriving while another
    is in flight returns immediately without doing anything. push() and
    pull() are not excluded against each other or against sync(); the
    repository's own lock still serializes every git command.

    Every run reports its state to the status sink before it starts and
    again when it ends (SYNCED or ERROR). Failures are forwarded to the sink
    at error level and re-raised; nothing is retried here.
    """

    def __init__(
        self,
        settings: Config,
        file_filter: Optional[FileFilter] = None,
        sink: Optional[StatusSink] = None,
        clock: Optional[Clock] = None,
        classify: Classifier = classify_failure,
        repository_factory: Callable[..., VersionedRepository] = VersionedRepository,
        token_providers: Optional[List[TokenProvider]] = None,
        use_timer_threads: bool = True
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Settings provider (remote URL, token, directories)
            file_filter: Source of syncable paths, DirectoryFileFilter by default
            sink: Receiver of status, log lines and countdown
            clock: Time source for the auto-sync countdown
            classify: Failure classifier handed to the pull protocol
            repository_factory: Builds the VersionedRepository on initialize()
            token_providers: Token lookup order, default_providers() by default
            use_timer_threads: Run the auto-sync timer on background threads
        """
        self.settings = settings
        self.file_filter = file_filter
        self.sink = sink or LoggingStatusSink()
        self.clock = clock or SystemClock()
        self.classify = classify
        self.repository_factory = repository_factory
        self.token_providers = token_providers
        self.use_timer_threads = use_timer_threads
        self.logger = logging.getLogger('mirrorsync.orchestrator')
        self.perf_logger = PerformanceLogger()

        self.repository: Optional[VersionedRepository] = None
        self.pull_protocol: Optional[PullProtocol] = None
        self.auto_sync: Optional[AutoSyncController] = None
        self.state = SyncState.PENDING
        self._sync_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self.repository is not None and self.pull_protocol is not None

    @property
    def branch(self) -> str:
        return getattr(self.settings, "branch", "main")

    @property
    def sync_interval_seconds(self) -> float:
        return getattr(self.settings, "sync_interval_seconds", 300.0)

    def _set_state(self, state: SyncState) -> None:
        self.state = state
        self.sink.on_status(state)

    def _require_initialized(self, operation: str) -> None:
        if not self.initialized:
            raise NotInitializedError(f"Sync not initialized, call initialize() before {operation}", operation)

    def _raise_for(self, result: GitSyncResult) -> None:
        if not result.success:
            raise error_for_failure(self.classify(result.message), result.message, result.operation)

    def _resolve_token(self, remote_url: str) -> Optional[str]:
        providers = self.token_providers
        if providers is None:
            providers = default_providers(self.settings.get_token())
        return resolve_token(providers, remote_url)

    # Lifecycle

    def verify_remote_access(self) -> None:
        """
        Check that the configured remote can be listed with the resolved token.

        Raises:
            ConfigurationError: If no remote URL is configured
            RemoteUnreachableError: With a readable reason if it cannot
        """
        remote_url = self.settings.get_remote_url()
        if not remote_url:
            raise ConfigurationError("Repository not configured (no remote URL)", "verify_access")
        verify_access(remote_url, self._resolve_token(remote_url))
        self.sink.on_log(f"Remote {remote_url} is reachable", LogLevel.SUCCESS)

    def initialize(self) -> None:
        """
        Prepare the working directory and mirror the current source files
        into it.

        Raises:
            ConfigurationError: If no remote URL is configured
            RemoteUnreachableError: If the remote cannot be cloned or fetched
        """
        remote_url = self.settings.get_remote_url()
        if not remote_url:
            raise ConfigurationError("Repository not configured (no remote URL)", "initialize")

        token = self._resolve_token(remote_url)

        repository = self.repository_factory(
            self.settings.get_local_working_path(),
            remote_url,
            branch=self.branch,
            timeout=getattr(self.settings, "git_timeout", 120.0),
            user_name=getattr(self.settings, "git_user_name", DEFAULT_GIT_USER_NAME),
            user_email=getattr(self.settings, "git_user_email", DEFAULT_GIT_USER_EMAIL)
        )

        with self.perf_logger.time_operation("initialize", {"remote": remote_url}):
            self._raise_for(repository.initialize(token))

        self.repository = repository
        self.pull_protocol = PullProtocol(repository, self.classify)
        if self.file_filter is None:
            self.file_filter = DirectoryFileFilter(
                self.settings.get_source_directory_path(),
                getattr(self.settings, "exclude_patterns", None)
            )

        self._mirror_into_working_copy()
        self._set_state(SyncState.PENDING)
        self.sink.on_log(f"Connected to {repository.repository_identifier}", LogLevel.INFO)
        self.logger.info(f"✅ Sync initialized for {repository.repository_identifier}")

    def disconnect(self) -> None:
        """Stop the timer and remove the working directory."""
        self.stop_auto_sync()
        if self.repository is not None:
            self.repository.destroy()
        self.repository = None
        self.pull_protocol = None
        self._set_state(SyncState.PENDING)
        self.logger.info("Sync disconnected")

    # Operations

    def _run(self, operation: str, state: SyncState, func: Callable[[], object]):
        self._set_state(state)
        try:
            with self.perf_logger.time_operation(operation):
                result = func()
        except Exception as e:
            message = e.message if isinstance(e, SyncError) else str(e)
            self._set_state(SyncState.ERROR)
            self.sink.on_log(f"{operation.capitalize()} failed: {message}", LogLevel.ERROR)
            raise
        self._set_state(SyncState.SYNCED)
        return result

    def push(self) -> Optional[str]:
        """
        Pull, mirror the source directory in, commit and push.

        Returns:
            The id of the pushed commit, None if there was nothing to commit
        """
        self._require_initialized("push")

        def push_run():
            self.pull_protocol.pull()
            return self._push_local_changes()

        commit_id = self._run("push", SyncState.PUSHING, push_run)
        self.sink.on_log(
            f"Pushed {commit_id[:7]}" if commit_id else "No local changes to push", LogLevel.SUCCESS
        )
        return commit_id

    def pull(self) -> None:
        """Mirror local edits in, run the pull protocol and mirror the working directory back out."""
        self._require_initialized("pull")
        self._run("pull", SyncState.PULLING, self._pull_changes)
        self.sink.on_log("Pulled remote changes", LogLevel.SUCCESS)

    def sync(self) -> bool:
        """
        Pull then push, unless another sync is already running.

        Returns:
            True if this call ran a sync, False if it was skipped
        """
        self._require_initialized("sync")

        if not self._sync_lock.acquire(blocking=False):
            self.logger.info("Sync already in progress, skipping")
            return False

        try:
            def sync_run():
                self._pull_changes()
                return self._push_local_changes()

            commit_id = self._run("sync", SyncState.SYNCING, sync_run)
            self.sink.on_log(
                f"Synced, pushed {commit_id[:7]}" if commit_id else "Synced, no local changes",
                LogLevel.SUCCESS
            )
        finally:
            self._sync_lock.release()
            if self.auto_sync is not None:
                self.auto_sync.reschedule()

        return True

    def _pull_changes(self) -> None:
        # Local edits must be in the working copy before the protocol stashes,
        # otherwise the copy back out overwrites them.
        self._mirror_into_working_copy()
        run = self.pull_protocol.pull()
        if run.recovery is not None and run.recovery.outcome("stash_pop") != "restored":
            self._restore_unsynced_edits(run.recovery.local_head)
        started = time.time()
        count = copy_from_working_copy(
            self.repository.repo_path, self.settings.get_source_directory_path()
        )
        self.perf_logger.log_mirror_copy("out of", self.repository.repo_path, count, time.time() - started)

    def _restore_unsynced_edits(self, base: Optional[str]) -> None:
        """
        Mirror the source in again after a recovery that reset the working copy.

        Files whose content still matches the local history the recovery
        started from are stale copies, not edits, and keep the recovered
        version.
        """
        repo = self.repository
        self._mirror_into_working_copy()
        if base is None:
            return

        paths, _ = repo.changed_paths()
        restored = 0
        for path in paths:
            committed = repo.show(path, base)
            if committed is None:
                restored += 1
                continue
            try:
                current = (repo.repo_path / path).read_bytes()
            except OSError:
                continue
            if current != committed:
                restored += 1
                continue
            checkout = repo.checkout_path(path, "HEAD")
            if not checkout.success:
                self.logger.warning(f"Could not restore recovered version of {path}: {checkout.message}")
        self.logger.info(f"Restored {restored} unsynced local edits after recovery")

    def _mirror_into_working_copy(self) -> int:
        started = time.time()
        count = copy_into_working_copy(
            self.settings.get_source_directory_path(),
            self.repository.repo_path,
            self.file_filter.list_syncable_relative_paths()
        )
        self.perf_logger.log_mirror_copy("into", self.repository.repo_path, count, time.time() - started)
        return count

    def _push_local_changes(self) -> Optional[str]:
        repo = self.repository
        self._mirror_into_working_copy()
        self._raise_for(repo.stage_all())

        commit = repo.commit(sync_commit_message(datetime.now(timezone.utc)))
        self._raise_for(commit)
        if not commit.output:
            self.logger.info("No changes to commit")
            return None

        self._raise_for(repo.push())
        self.logger.info(f"📤 Pushed commit {commit.output[:7]}")
        return commit.output

    # Status

    def status(self) -> SyncStatus:
        if self.repository is None:
            return SyncStatus(
                pending_change_count=0,
                last_sync_timestamp=None,
                repository_identifier=self.settings.get_remote_url() or "",
                state=self.state
            )
        return SyncStatus(
            pending_change_count=self.repository.pending_change_count(),
            last_sync_timestamp=self.repository.last_commit_date(),
            repository_identifier=self.repository.repository_identifier,
            state=self.state
        )

    def detailed_status(self) -> DetailedStatus:
        """Ahead/behind counts after a best-effort fetch, plus changed paths."""
        if self.repository is None:
            return DetailedStatus(commits_ahead=0, commits_behind=0)

        fetch = self.repository.fetch()
        if not fetch.success:
            self.logger.debug(f"Fetch for detailed status failed, counts may be stale: {fetch.message}")

        ahead, behind = self.repository.ahead_behind()
        paths, total = self.repository.changed_paths(DETAILED_STATUS_PATH_LIMIT)
        return DetailedStatus(
            commits_ahead=ahead,
            commits_behind=behind,
            changed_paths=paths,
            total_changed_count=total
        )

    # Auto-sync

    def _auto_sync_run(self) -> None:
        self.sync()

    def start_auto_sync(self, interval_seconds: Optional[float] = None) -> None:
        """Start the periodic sync timer. No-op if it is already running."""
        self._require_initialized("start_auto_sync")
        if self.auto_sync is None:
            self.auto_sync = AutoSyncController(
                interval_seconds or self.sync_interval_seconds,
                self._auto_sync_run,
                self.sink,
                clock=self.clock,
                use_threads=self.use_timer_threads
            )
        self.auto_sync.start()

    def stop_auto_sync(self) -> None:
        if self.auto_sync is not None:
            self.auto_sync.stop()


_sync_orchestrator: Optional[SyncOrchestrator] = None


def get_sync_orchestrator(config: Config) -> SyncOrchestrator:
    """Get or create the global orchestrator instance."""
    global _sync_orchestrator
    if _sync_orchestrator is None:
        _sync_orchestrator = SyncOrchestrator(config)
    return _sync_orchestrator
