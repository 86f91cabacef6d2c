"""
Pin the vendored WeylandTavern checkout to a commit, tag or branch.

Examples (from project root):
  python tools/pin_vendor.py origin/nightly
  python tools/pin_vendor.py origin/nightly --exact
  python tools/pin_vendor.py tags/v1.12.0
  python tools/pin_vendor.py 3f2c9ab
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("ref", help="Commit sha, tags/<name>, origin/<branch> or <branch>.")
    parser.add_argument(
        "--exact",
        action="store_true",
        help="Detach onto the remote branch commit instead of resetting a local tracking branch.",
    )
    parser.add_argument("--vendor-dir", help="Vendor repository root (default: from .env).")
    args = parser.parse_args()

    project_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(project_root))

    from launcher_backend.config import load_config
    from launcher_backend.errors import LauncherError
    from launcher_backend.refs import checkout_ref, resolve_ref

    try:
        spec = resolve_ref(args.ref)
        vendor_dir = Path(args.vendor_dir) if args.vendor_dir else load_config().resolve_vendor_dir()
        print(f"Pinning {vendor_dir} to {spec.kind} {spec.name}{' (exact)' if args.exact else ''}...")
        result = checkout_ref(vendor_dir, args.ref, exact=args.exact)
    except LauncherError as e:
        print(f"ERROR: {e}")
        return 1

    if result.text:
        print(result.text)
    print("Done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
