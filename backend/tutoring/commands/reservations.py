#!/usr/bin/env python
# backend/tutoring/commands/reservations.py
"""
Reservation management commands.

Usage:
    python -m tutoring.commands.reservations init-db
    python -m tutoring.commands.reservations expire-pending
    python -m tutoring.commands.reservations check-conflicts --teacher-id 3 --from 2025-01-01 --to 2025-01-31
"""

import argparse
from datetime import date
import json
import logging
import sys
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from tutoring.core.config import settings
from tutoring.core.exceptions import DomainException
from tutoring.database import SessionLocal, init_db
from tutoring.services.conflict_checker import ConflictChecker
from tutoring.services.reservation_service import ReservationService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class ReservationCommand:
    """Reservation maintenance command handler."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def init_db(self) -> None:
        init_db()

    def expire_pending(self) -> dict:
        db = self.session_factory()
        try:
            result = ReservationService(db).expire_pending_reservations()
            logger.info(f"Expired {result.count} pending reservation(s)")
            return {"count": result.count, "reservation_ids": result.reservation_ids}
        finally:
            db.close()

    def check_conflicts(
        self, teacher_id: int, from_date: Optional[date], to_date: Optional[date]
    ) -> dict:
        db = self.session_factory()
        try:
            report = ConflictChecker(db).detect_conflicts(teacher_id, from_date, to_date)
            return report.model_dump(mode="json")
        finally:
            db.close()


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value}. Expected YYYY-MM-DD.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reservation scheduling maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("expire-pending", help="Cancel requests past their response deadline")

    conflicts_parser = subparsers.add_parser(
        "check-conflicts", help="List reservations inside a teacher's slot windows"
    )
    conflicts_parser.add_argument("--teacher-id", type=int, required=True)
    conflicts_parser.add_argument("--from", dest="from_date", type=_parse_date, default=None)
    conflicts_parser.add_argument("--to", dest="to_date", type=_parse_date, default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cmd = ReservationCommand()

    try:
        if args.command == "init-db":
            cmd.init_db()
            print("Database tables created")
        elif args.command == "expire-pending":
            print(json.dumps(cmd.expire_pending(), indent=2))
        elif args.command == "check-conflicts":
            print(json.dumps(cmd.check_conflicts(args.teacher_id, args.from_date, args.to_date), indent=2))
    except DomainException as exc:
        logger.error(f"{args.command} failed: {exc.message}")
        print(json.dumps({"code": exc.code, "message": exc.message, "details": exc.details}, indent=2))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
