#!/usr/bin/env python
"""
Collect Index Snapshot

Cron-friendly script that runs one CryptoVIX aggregation cycle and exits.
Use this instead of the long-running worker when scheduling with cron
(e.g. */5 * * * *).

Usage:
    python scripts/collect_index_snapshot.py [--config config/cryptovix.yaml] [--dry-run]

Exit codes:
    0: Success
    1: Recoverable error (will retry)
    2: Fatal error (do not retry)
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from cryptovix.orchestration.worker import main


if __name__ == "__main__":
    argv = sys.argv[1:]
    if "--once" not in argv:
        argv.append("--once")
    sys.exit(asyncio.run(main(argv)))
