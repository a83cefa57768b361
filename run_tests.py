#!/usr/bin/env python3
"""Test runner for the mirrorsync test modules."""

import sys
import subprocess
from pathlib import Path


def run_test(test_file: str, description: str) -> bool:
    """Run a single test module in its own interpreter and return success status."""
    print(f"\n{'='*60}")
    print(f"Running: {description}")
    print(f"File: {test_file}")
    print('='*60)

    try:
        result = subprocess.run([sys.executable, test_file], capture_output=False, text=True)
        success = result.returncode == 0
        print(f"\n{'✅ PASSED' if success else '❌ FAILED'}: {description}")
        return success

    except OSError as e:
        print(f"❌ ERROR running {test_file}: {e}")
        return False


def main():
    """Run every suite, pure logic first and real-git scenarios last."""
    print("Mirror Sync Test Suite")
    print("="*60)

    tests = [
        ("test_conflict_resolver.py", "Binary Conflict Resolver"),
        ("test_failure_classification.py", "Git Failure Classification"),
        ("test_config.py", "Configuration"),
        ("test_credentials.py", "Credentials and Remote Access"),
        ("test_file_filter.py", "Source File Filter"),
        ("test_mirror.py", "Mirror Copies"),
        ("test_auto_sync.py", "Auto-Sync Timer"),
        ("test_pull_protocol.py", "Pull Protocol"),
        ("test_versioned_repository.py", "Versioned Repository"),
        ("test_recovery_merger.py", "Divergence Recovery"),
        ("test_sync_orchestrator.py", "Sync Orchestrator"),
        ("test_server.py", "MCP Server"),
    ]

    root = Path(__file__).parent
    results = []
    for test_file, description in tests:
        if (root / test_file).exists():
            success = run_test(str(root / test_file), description)
            results.append((test_file, description, success))
        else:
            print(f"⚠️  Test file not found: {test_file}")
            results.append((test_file, description, False))

    print(f"\n{'='*60}")
    print("TEST SUITE SUMMARY")
    print("="*60)

    passed = 0
    for test_file, description, success in results:
        status = "✅ PASS" if success else "❌ FAIL"
        print(f"{status} {description}")
        if success:
            passed += 1

    print(f"\nResults: {passed}/{len(results)} suites passed")

    if passed == len(results):
        print("\n🎉 ALL TESTS PASSED!")
        return True
    else:
        print(f"\n⚠️  {len(results) - passed} suites failed")
        return False


if __name__ == "__main__":
    try:
        success = main()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n\nTest suite interrupted by user")
        sys.exit(1)
