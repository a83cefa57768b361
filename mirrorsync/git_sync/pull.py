"""Pull protocol: bring the working copy up to date with the remote."""

import logging
import os
from enum import Enum
from typing import Dict, List, Optional

from .conflict import Resolution, is_binary_path, resolve_states
from .error_strategies import Classifier, classify_failure, error_for_failure
from .error_types import FailureKind
from .recovery import RecoveryMerger, RecoveryReport
from .repository import VersionedRepository
from .repository_info import FileState, RepositoryHealth


class PullState(Enum):
    """States of a single pull run."""
    IDLE = "idle"
    FETCHING = "fetching"
    REBASE_PULLING = "rebase_pulling"
    RECOVERING = "recovering"
    DONE = "done"
    FAILED = "failed"


class PullRun:
    """State of one pull invocation."""

    def __init__(self):
        self.state = PullState.IDLE
        self.had_stash = False
        self.history: List[PullState] = [PullState.IDLE]
        self.failure: Optional[FailureKind] = None
        self.recovery: Optional[RecoveryReport] = None
        self.local_mtimes: Dict[str, float] = {}
        self.stash_resolutions: Dict[str, Resolution] = {}

    def enter(self, state: PullState) -> None:
        self.state = state
        self.history.append(state)


class PullProtocol:
    """
    Stash, rebase-pull, and route failures.

    - A repository that is already conflicted goes straight to recovery.
    - A stale index.lock is removed before anything else runs.
    - Uncommitted changes are stashed and restored afterwards. When the
      restore conflicts with the pulled history, each stashed path is
      decided on its own: binary paths through the conflict resolver, text
      paths keep the local version. The stash entry is always dropped.
    - An empty remote is a successful no-op.
    - Divergence is handed to RecoveryMerger.
    - Anything else restores the stash and raises the classified error.

    Each call to pull() starts a fresh PullRun, so no state carries over
    between invocations.
    """

    def __init__(
        self,
        repository: VersionedRepository,
        classify: Classifier = classify_failure,
        merger: Optional[RecoveryMerger] = None
    ):
        self.repository = repository
        self.classify = classify
        self.merger = merger or RecoveryMerger(repository)
        self.logger = logging.getLogger('mirrorsync.git_sync.pull')
        self.last_run: Optional[PullRun] = None

    def pull(self) -> PullRun:
        """
        Run the protocol once.

        Returns:
            The finished PullRun (state DONE)

        Raises:
            RemoteUnreachableError: On network or authentication failure
            UnclassifiedSyncError: On any unrecognized git failure
            RecoveryFailedError: If reconciliation could not be pushed
        """
        run = PullRun()
        self.last_run = run
        repo = self.repository

        health = repo.health()
        if health == RepositoryHealth.LOCKED:
            repo.remove_stale_lock()
            health = repo.health()

        if health == RepositoryHealth.CONFLICTED:
            self.logger.warning("Working copy is conflicted, recovering before pulling")
            return self._recover(run)

        run.enter(PullState.FETCHING)
        if health == RepositoryHealth.DIRTY:
            run.local_mtimes = self._working_tree_mtimes()
            stash = repo.stash_push()
            if stash.success:
                run.had_stash = True
            else:
                self.logger.warning(f"Could not stash local changes: {stash.message}")

        run.enter(PullState.REBASE_PULLING)
        result = repo.pull(rebase=True)
        if result.success:
            self._pop_stash(run)
            run.enter(PullState.DONE)
            return run

        kind = self.classify(result.message)
        run.failure = kind

        if kind == FailureKind.EMPTY_REMOTE:
            self.logger.info("Remote has no history yet, nothing to pull")
            self._pop_stash(run)
            run.enter(PullState.DONE)
            return run

        if kind == FailureKind.DIVERGENCE:
            return self._recover(run)

        self._pop_stash(run)
        run.enter(PullState.FAILED)
        self.logger.error(f"Pull failed ({kind.value}): {result.message}")
        raise error_for_failure(kind, result.message, "pull")

    def _recover(self, run: PullRun) -> PullRun:
        run.enter(PullState.RECOVERING)
        try:
            run.recovery = self.merger.recover(run.had_stash)
        except Exception:
            run.enter(PullState.FAILED)
            raise
        run.enter(PullState.DONE)
        return run

    def _pop_stash(self, run: PullRun) -> None:
        if not run.had_stash:
            return
        pop = self.repository.stash_pop()
        if not pop.success:
            self.logger.warning(f"Stashed changes conflict with the pulled history: {pop.message}")
            self._reconcile_stash(run)

    def _working_tree_mtimes(self) -> Dict[str, float]:
        paths, _ = self.repository.changed_paths()
        mtimes = {}
        for path in paths:
            try:
                mtimes[path] = os.stat(self.repository.repo_path / path).st_mtime
            except OSError:
                continue
        return mtimes

    def _reconcile_stash(self, run: PullRun) -> None:
        """
        Apply the stash entry by hand after a conflicting pop.

        The working tree is reset to the pulled HEAD first, so no conflict
        markers or unmerged index entries survive. Paths the stash deleted
        keep the pulled version.
        """
        repo = self.repository
        paths = repo.stash_paths()

        reset = repo.reset("HEAD", hard=True)
        if not reset.success:
            self.logger.warning(f"Could not reset before restoring the stash: {reset.message}")

        for path in paths:
            content = repo.stash_content(path)
            if content is None:
                continue

            mtime = run.local_mtimes.get(path, 0.0)
            if is_binary_path(path):
                local = FileState(path, len(content), mtime)
                remote = FileState(path, repo.file_size_at(path, "HEAD"), repo.last_change_timestamp(path, "HEAD"))
                resolution = resolve_states(local, remote)
            else:
                resolution = Resolution.KEEP_LOCAL

            run.stash_resolutions[path] = resolution
            self.logger.info(f"Stashed path {path}: {resolution.value}")
            if resolution == Resolution.KEEP_LOCAL:
                repo.write_file(path, content, mtime)

        drop = repo.stash_drop()
        if not drop.success:
            self.logger.warning(f"Could not drop the stash entry: {drop.message}")
