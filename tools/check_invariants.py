#!/usr/bin/env python3
"""HackDAO invariant checks against the governance parameter file."""

import sys
from pathlib import Path

from hackdao.policy.invariants import check_config_dir


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"


def check(config_dir: Path = CONFIG_DIR) -> int:
    errors = check_config_dir(config_dir)
    if errors:
        print("Invariant check failed:")
        for error in errors:
            print(f" - {error}")
        return 1
    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
