"""
Runs the knowledge-base ingestion worker until interrupted.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import get_settings
from backend.worker import run_loop

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Knowledge-base ingestion worker")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=2.0,
        help="Seconds to wait on an empty queue",
    )
    args = parser.parse_args()

    logging.basicConfig(level=get_settings().log_level)
    try:
        run_loop(poll_interval_seconds=args.poll_interval)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
