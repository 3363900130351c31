"""Run retention sweeps as a standalone process (cron / scheduled job)."""

import argparse
import logging
import sys

from audit_trail.config import settings
from audit_trail.core.database import SessionLocal
from audit_trail.core.exceptions import BaseAPIException
from audit_trail.services.retention import retention_sweeper

logger = logging.getLogger("run_retention")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete audit records past their retention age.")
    parser.add_argument("--events", type=int, default=None, help="Max age in days for audit events")
    parser.add_argument("--requests", type=int, default=None, help="Max age in days for inbound request logs")
    parser.add_argument(
        "--outgoing", type=int, default=None, help="Max age in days for outgoing request logs"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    args = _parse_args(argv)
    overrides = {
        "events": args.events,
        "requests": args.requests,
        "outgoing_requests": args.outgoing,
    }

    db = SessionLocal()
    try:
        for kind, days in overrides.items():
            if days is None:
                days = settings.retention_days_for(kind)
            deleted = retention_sweeper.sweep(db, kind, days)
            logger.info("%s: %d deleted", kind, deleted)
    except BaseAPIException as exc:
        logger.error("Retention run failed: %s", exc.message)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
