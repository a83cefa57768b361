#!/usr/bin/env python3
"""
Tests for VersionedRepository against real throwaway git remotes.

Every test builds a bare remote in a temporary directory, so nothing leaves
the machine.
"""

import shutil
import sys
import tempfile
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from mirrorsync.git_sync.error_strategies import classify_failure
from mirrorsync.git_sync.error_types import FailureKind
from mirrorsync.git_sync.repository import VersionedRepository, parse_status_paths
from mirrorsync.git_sync.repository_info import RepositoryHealth

from git_test_helpers import (
    clone_helper, commit_file, create_bare_remote, git, make_repository,
    remote_head, seed_remote
)


def test_initialize_clones_remote_with_history():
    print("Testing clone of a remote with history")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        seed_remote(temp_path, remote, {"notes/today.md": b"hello\n"})

        repository = make_repository(temp_path, remote)

        assert (repository.repo_path / "notes" / "today.md").read_bytes() == b"hello\n"
        assert repository.health() == RepositoryHealth.CLEAN
        assert git(repository.repo_path, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert repository.last_commit_date() is not None
        print("  ✓ Working copy checked out on main")


def test_initialize_empty_remote_creates_initial_commit():
    print("Testing clone of an empty remote")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)

        repository = make_repository(temp_path, remote)

        assert (repository.repo_path / "README.md").exists()
        assert git(repository.repo_path, "log", "-1", "--format=%s") == "Initial commit"
        assert git(repository.repo_path, "rev-parse", "--abbrev-ref", "HEAD") == "main"
        assert repository.health() == RepositoryHealth.CLEAN
        print("  ✓ README initial commit created")


def test_initialize_adopts_directory_with_files():
    print("Testing adoption of a non-empty directory")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        seed_remote(temp_path, remote, {"shared.txt": b"from remote\n"})

        working = temp_path / "working"
        working.mkdir()
        (working / "local-only.txt").write_text("mine\n")

        repository = make_repository(temp_path, remote)

        assert (working / "shared.txt").read_text() == "from remote\n"
        assert (working / "local-only.txt").read_text() == "mine\n"
        assert repository.health() == RepositoryHealth.DIRTY
        print("  ✓ Remote history checked out, local files kept")


def test_initialize_existing_repository_is_idempotent():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        seed_remote(temp_path, remote, {"a.txt": b"a\n"})

        repository = make_repository(temp_path, remote)
        head = git(repository.repo_path, "rev-parse", "HEAD")

        again = VersionedRepository(repository.repo_path, remote)
        assert again.initialize().success
        assert git(repository.repo_path, "rev-parse", "HEAD") == head


def test_commit_with_clean_tree_reports_nothing_to_commit():
    print("Testing commit on a clean tree")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        assert repository.stage_all().success
        result = repository.commit("Sync: nothing")
        assert result.success
        assert result.error_code == "NOTHING_TO_COMMIT"
        assert result.output is None
        print("  ✓ Clean tree is a successful no-op")


def test_commit_and_push():
    print("Testing commit and push")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        (repository.repo_path / "journal.md").write_text("entry\n")
        assert repository.stage_all().success
        result = repository.commit("Sync: journal")

        assert result.success
        assert len(result.output) == 40
        assert repository.push().success
        assert remote_head(remote) == result.output
        print("  ✓ Commit id returned and pushed to main")


def test_health_states():
    print("Testing health classification")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        assert repository.health() == RepositoryHealth.CLEAN

        (repository.repo_path / "draft.txt").write_text("draft\n")
        assert repository.health() == RepositoryHealth.DIRTY

        lock = repository.git_dir / "index.lock"
        lock.write_text("")
        assert repository.health() == RepositoryHealth.LOCKED
        assert repository.remove_stale_lock() is True
        assert not lock.exists()
        assert repository.remove_stale_lock() is False

        (repository.git_dir / "MERGE_HEAD").write_text(git(repository.repo_path, "rev-parse", "HEAD") + "\n")
        assert repository.health() == RepositoryHealth.CONFLICTED
        print("  ✓ Clean, dirty, locked and conflicted states detected")


def test_changed_paths_are_limited():
    print("Testing changed path listing")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        for i in range(12):
            (repository.repo_path / "batch").mkdir(exist_ok=True)
            (repository.repo_path / "batch" / f"file{i:02d}.txt").write_text(f"{i}\n")

        paths, total = repository.changed_paths(10)
        assert len(paths) == 10
        assert total == 12
        assert all(path.startswith("batch/") for path in paths)
        assert repository.pending_change_count() == 12
        print("  ✓ Preview capped at 10 with full count")


def test_parse_status_paths():
    porcelain = " M notes.md\n?? new file.txt\nR  old.txt -> renamed.txt\nMM both.txt"
    assert parse_status_paths(porcelain) == ["notes.md", "new file.txt", "renamed.txt", "both.txt"]


def test_pull_from_empty_remote_is_classified():
    print("Testing pull against an empty remote")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        result = repository.pull()
        assert not result.success
        assert classify_failure(result.message) == FailureKind.EMPTY_REMOTE
        print("  ✓ Missing remote branch recognized")


def test_pull_from_missing_remote_is_unreachable():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        shutil.rmtree(remote)

        result = repository.pull()
        assert not result.success
        assert classify_failure(result.message) == FailureKind.REMOTE_UNREACHABLE


def test_ahead_behind():
    print("Testing ahead/behind counts")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        seed_remote(temp_path, remote, {"a.txt": b"a\n"})
        repository = make_repository(temp_path, remote)

        other = clone_helper(remote, temp_path / "other")
        commit_file(other, "b.txt", b"b\n")

        (repository.repo_path / "c.txt").write_text("c\n")
        repository.stage_all()
        repository.commit("local")

        assert repository.fetch().success
        assert repository.ahead_behind() == (1, 1)
        print("  ✓ One commit ahead, one behind")


def test_show_and_size_preserve_binary_content():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        content = b"\x89PNG\r\n\x1a\n\x00\x01\x02\n"
        seed_remote(temp_path, remote, {"a.png": content})
        repository = make_repository(temp_path, remote)

        assert repository.show("a.png", "HEAD") == content
        assert repository.file_size_at("a.png", "origin/main") == len(content)
        assert repository.show("missing.png", "HEAD") is None
        assert repository.file_size_at("missing.png", "HEAD") == 0
        assert repository.last_change_timestamp("a.png", "origin/main") > 0
        assert repository.last_change_timestamp("missing.png", "origin/main") == 0


def test_diff_names_and_checkout_path():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        seed_remote(temp_path, remote, {"a.txt": b"one\n"})
        repository = make_repository(temp_path, remote)

        other = clone_helper(remote, temp_path / "other")
        commit_file(other, "a.txt", b"two\n")
        repository.fetch()

        diff = repository.diff_names("HEAD", repository.remote_ref)
        assert diff.success
        assert diff.output.splitlines() == ["a.txt"]

        assert repository.checkout_path("a.txt", repository.remote_ref).success
        assert (repository.repo_path / "a.txt").read_text() == "two\n"


def test_stash_round_trip_includes_untracked_files():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        (repository.repo_path / "untracked.txt").write_text("keep me\n")
        assert repository.stash_push().success
        assert not (repository.repo_path / "untracked.txt").exists()
        assert repository.health() == RepositoryHealth.CLEAN

        assert repository.stash_pop().success
        assert (repository.repo_path / "untracked.txt").read_text() == "keep me\n"
        assert not repository.stash_pop().success


def test_raw_escape_hatch():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        result = repository.raw("rev-parse", "--abbrev-ref", "HEAD")
        assert result.success
        assert result.output == "main"


def test_concurrent_calls_are_serialized():
    print("Testing per-repository serialization")

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)
        for i in range(5):
            (repository.repo_path / f"f{i}.txt").write_text(str(i))

        failures = []

        def worker():
            for _ in range(5):
                for result in (repository.stage_all(), repository.fetch()):
                    if not result.success:
                        failures.append(result.message)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
        assert not (repository.git_dir / "index.lock").exists()
        print("  ✓ No index.lock contention across threads")


def test_repository_identifier_hides_token():
    repository = VersionedRepository(
        Path(tempfile.gettempdir()) / "unused", "https://github.com/owner/repo.git", token="s3cret"
    )
    assert repository.repository_identifier == "https://github.com/owner/repo.git"
    assert "s3cret" not in repository.repository_identifier


def test_destroy_removes_working_copy():
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        remote = create_bare_remote(temp_path)
        repository = make_repository(temp_path, remote)

        repository.destroy()
        assert not repository.repo_path.exists()


def run_all_tests():
    """Run all VersionedRepository tests."""
    print("VersionedRepository Tests")
    print("=" * 50)

    tests = [
        test_initialize_clones_remote_with_history,
        test_initialize_empty_remote_creates_initial_commit,
        test_initialize_adopts_directory_with_files,
        test_initialize_existing_repository_is_idempotent,
        test_commit_with_clean_tree_reports_nothing_to_commit,
        test_commit_and_push,
        test_health_states,
        test_changed_paths_are_limited,
        test_parse_status_paths,
        test_pull_from_empty_remote_is_classified,
        test_pull_from_missing_remote_is_unreachable,
        test_ahead_behind,
        test_show_and_size_preserve_binary_content,
        test_diff_names_and_checkout_path,
        test_stash_round_trip_includes_untracked_files,
        test_raw_escape_hatch,
        test_concurrent_calls_are_serialized,
        test_repository_identifier_hides_token,
        test_destroy_removes_working_copy,
    ]

    passed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"  ✗ {test.__name__} failed: {e}")
        print()

    print("=" * 50)
    print(f"VersionedRepository Tests: {passed}/{len(tests)} passed")
    return passed == len(tests)


if __name__ == "__main__":
    sys.exit(0 if run_all_tests() else 1)
