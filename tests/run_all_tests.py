"""
Run every launcher test module, one subprocess each.
"""
import subprocess
import sys
from pathlib import Path

tests_dir = Path(__file__).parent

test_files = [
    'test_commands.py',
    'test_config.py',
    'test_log_sink.py',
    'test_refs.py',
    'test_vendor_update.py',
    'test_vendor_update_git.py',
    'test_sync.py',
    'test_npm.py',
    'test_health_probe.py',
    'test_supervisor.py',
    'test_api.py',
]


def run_test(test_file):
    print(f"\n{'='*60}")
    print(f"Running {test_file}")
    print('='*60)

    result = subprocess.run(
        [sys.executable, str(tests_dir / test_file)],
        capture_output=True,
        text=True,
        cwd=str(tests_dir.parent),
    )

    print(f"[{'PASS' if result.returncode == 0 else 'FAIL'}] {test_file}")
    if result.stdout:
        print(result.stdout)
    if result.returncode != 0 and result.stderr:
        print(result.stderr)
    return result.returncode == 0


if __name__ == '__main__':
    passed = 0
    failed = 0

    for test_file in test_files:
        if not (tests_dir / test_file).exists():
            print(f"[SKIP] {test_file} (not found)")
            continue
        if run_test(test_file):
            passed += 1
        else:
            failed += 1

    print(f"\n{'='*60}")
    print(f"Test Summary: {passed} passed, {failed} failed")
    print('='*60)

    sys.exit(0 if failed == 0 else 1)
