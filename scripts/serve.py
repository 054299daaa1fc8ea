"""
Run the HabitForge API under uvicorn.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import uvicorn

from habitforge.config import get_settings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="HabitForge API server")
    parser.add_argument("--host", type=str, default=settings.host)
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.port,
        help="Port to listen on (defaults to PORT or 5000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development only)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes; set REDIS_URL when using more than one",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.workers > 1 and not settings.redis_url:
        logger.warning(
            "Running %d workers without REDIS_URL; completion locks are per-process only",
            args.workers,
        )
    logger.info("HabitForge Server running on port %d", args.port)

    uvicorn.run(
        "habitforge.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
