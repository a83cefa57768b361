#!/usr/bin/env python3
"""
Tests for the copies between the source directory and the working directory.
"""

import os
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from mirrorsync.mirror import copy_from_working_copy, copy_into_working_copy


def test_copy_into_working_copy():
    print("Testing source -> working directory copy")

    with tempfile.TemporaryDirectory() as temp_dir:
        source = Path(temp_dir) / "source"
        repo = Path(temp_dir) / "repo"
        (source / "nested").mkdir(parents=True)
        (source / "a.txt").write_text("a")
        (source / "nested" / "b.bin").write_bytes(b"\x00\x01")
        os.utime(source / "a.txt", (1_600_000_000, 1_600_000_000))

        count = copy_into_working_copy(source, repo, ["a.txt", "nested/b.bin", "vanished.txt"])

        assert count == 2
        assert (repo / "a.txt").read_text() == "a"
        assert (repo / "nested" / "b.bin").read_bytes() == b"\x00\x01"
        assert int((repo / "a.txt").stat().st_mtime) == 1_600_000_000
        print("  ✓ Listed files copied with metadata, vanished ones skipped")


def test_copy_into_is_additive():
    with tempfile.TemporaryDirectory() as temp_dir:
        source = Path(temp_dir) / "source"
        repo = Path(temp_dir) / "repo"
        source.mkdir()
        repo.mkdir()
        (repo / "only-in-repo.txt").write_text("keep me")

        assert copy_into_working_copy(source, repo, []) == 0
        assert (repo / "only-in-repo.txt").exists()


def test_copy_from_working_copy_skips_git():
    print("Testing working directory -> source copy")

    with tempfile.TemporaryDirectory() as temp_dir:
        repo = Path(temp_dir) / "repo"
        source = Path(temp_dir) / "source"
        (repo / ".git" / "objects").mkdir(parents=True)
        (repo / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        (repo / "docs" / ".git").mkdir(parents=True)
        (repo / "docs" / ".git" / "config").write_text("[core]\n")
        (repo / "docs" / "readme.md").write_text("docs")
        (repo / "top.txt").write_text("top")
        source.mkdir()
        (source / "local-only.txt").write_text("untouched")

        count = copy_from_working_copy(repo, source)

        assert count == 2
        assert (source / "top.txt").read_text() == "top"
        assert (source / "docs" / "readme.md").read_text() == "docs"
        assert not (source / ".git").exists()
        assert not (source / "docs" / ".git").exists()
        assert (source / "local-only.txt").read_text() == "untouched"
        print("  ✓ .git skipped at any depth, nothing deleted")


def test_copy_from_missing_working_copy():
    with tempfile.TemporaryDirectory() as temp_dir:
        assert copy_from_working_copy(Path(temp_dir) / "absent", Path(temp_dir) / "source") == 0


def run_all_tests():
    """Run all mirror copy tests."""
    print("Mirror Copy Tests")
    print("=" * 50)

    tests = [
        test_copy_into_working_copy,
        test_copy_into_is_additive,
        test_copy_from_working_copy_skips_git,
        test_copy_from_missing_working_copy,
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
    print(f"Mirror Copy Tests: {passed}/{len(tests)} passed")
    return passed == len(tests)


if __name__ == "__main__":
    sys.exit(0 if run_all_tests() else 1)
