"""Reconciliation of a divergent or half-broken working copy."""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..errors import RecoveryFailedError
from .conflict import Resolution, is_binary_path, resolve_states
from .repository import VersionedRepository
from .repository_info import FileState

RECONCILIATION_MESSAGE = "Sync: local changes preserved"


@dataclass
class RecoveryReport:
    """What a recovery run did, step by step."""
    steps: List[Tuple[str, str]] = field(default_factory=list)
    resolutions: Dict[str, Resolution] = field(default_factory=dict)
    commit_id: Optional[str] = None
    local_head: Optional[str] = None

    def outcome(self, step: str) -> Optional[str]:
        for name, outcome in self.steps:
            if name == step:
                return outcome
        return None


class RecoveryMerger:
    """
    Brings the working copy from any divergent or corrupted state back to a
    committed state that matches local intent, then publishes it with a
    force-push.

    Only the final force-push can fail the run. Every earlier step is best
    effort: its failure is recorded in the report and the next step runs.
    Binary paths that differ from the remote are decided one by one with the
    conflict resolver; everything else keeps the working tree version, and
    the commit graph always follows local history.
    """

    def __init__(self, repository: VersionedRepository):
        self.repository = repository
        self.logger = logging.getLogger('mirrorsync.git_sync.recovery')

    def _record(self, report: RecoveryReport, step: str, outcome: str) -> None:
        report.steps.append((step, outcome))
        self.logger.info(f"step={step} outcome={outcome}")

    def recover(self, had_stash: bool) -> RecoveryReport:
        """
        Run the reconciliation.

        Args:
            had_stash: Whether the calling pull stashed uncommitted changes

        Returns:
            RecoveryReport of the run

        Raises:
            RecoveryFailedError: If the final force-push is rejected
        """
        repo = self.repository
        report = RecoveryReport()
        self.logger.warning("🔧 Divergence detected, reconciling with local history")

        # 1. Clear any operation in progress
        rebase = repo.abort_rebase()
        merge = repo.abort_merge()
        lock_removed = repo.remove_stale_lock()
        self._record(
            report, "abort",
            f"rebase={'aborted' if rebase.success else 'none'} "
            f"merge={'aborted' if merge.success else 'none'} "
            f"lock={'removed' if lock_removed else 'none'}"
        )

        # 2. Restore stashed local changes
        restored = False
        if had_stash:
            pop = repo.stash_pop()
            restored = pop.success
            self._record(report, "stash_pop", "restored" if pop.success else f"conflicted: {pop.message}")
        else:
            self._record(report, "stash_pop", "skipped")

        # 3. Clear the index. A cleanly restored stash lives only in the working
        #    tree, so it is kept with a mixed reset; otherwise reset hard.
        reset = repo.reset("HEAD", hard=not restored)
        self._record(
            report, "reset",
            ("mixed" if restored else "hard") if reset.success else f"failed: {reset.message}"
        )
        report.local_head = repo.head_commit()

        # 4. Refresh the remote-tracking ref
        fetch = repo.fetch()
        self._record(report, "fetch", "ok" if fetch.success else f"failed: {fetch.message}")

        # 5. Find binary paths that differ from the remote
        diff = repo.diff_names("HEAD", repo.remote_ref)
        differing = diff.output.splitlines() if diff.success and diff.output else []
        binary_paths = [path for path in differing if is_binary_path(path)]
        self._record(
            report, "diff",
            f"paths={len(differing)} binary={len(binary_paths)}" if diff.success else "no remote ref"
        )

        # 6. Decide each binary path
        for path in binary_paths:
            resolution = self._resolve_path(path)
            report.resolutions[path] = resolution
            if resolution == Resolution.KEEP_REMOTE:
                checkout = repo.checkout_path(path, repo.remote_ref)
                outcome = "keep_remote" if checkout.success else f"keep_remote checkout failed: {checkout.message}"
            else:
                outcome = "keep_local"
            self._record(report, f"resolve:{path}", outcome)

        # 7. Commit whatever the working tree now holds
        repo.stage_all()
        commit = repo.commit(RECONCILIATION_MESSAGE)
        if commit.success and commit.output:
            report.commit_id = commit.output
            self._record(report, "commit", commit.output)
        elif commit.success:
            self._record(report, "commit", "nothing to commit")
        else:
            self._record(report, "commit", f"failed: {commit.message}")

        # 8. Publish local history
        push = repo.push(force=True)
        if not push.success:
            self._record(report, "push", f"failed: {push.message}")
            raise RecoveryFailedError(f"Force-push after reconciliation failed: {push.message}", "recover")
        self._record(report, "push", "forced")

        self.logger.info(
            f"✅ Reconciliation complete ({len(report.resolutions)} binary paths resolved)"
        )
        return report

    def _resolve_path(self, path: str) -> Resolution:
        repo = self.repository
        local_path = repo.repo_path / path
        try:
            stat = os.stat(local_path)
            local = FileState(path, stat.st_size, stat.st_mtime)
        except OSError:
            local = FileState(path, 0, 0.0)

        remote = FileState(
            path,
            repo.file_size_at(path, repo.remote_ref),
            repo.last_change_timestamp(path, repo.remote_ref)
        )
        resolution = resolve_states(local, remote)
        self.logger.debug(
            f"Resolved {path}: local={local.size}B@{local.mtime:.0f} "
            f"remote={remote.size}B@{remote.mtime:.0f} -> {resolution.value}"
        )
        return resolution
