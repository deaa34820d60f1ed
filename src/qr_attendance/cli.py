"""
QR Attendance Operator CLI
==========================
Maintenance entry point for operators and schedulers.

Usage:
  qr-attendance init
  qr-attendance seed-demo
  qr-attendance mark S101 QR123 --at 2025-09-17T10:05:00
  qr-attendance clean [--session-id 1]
  qr-attendance analytics C101 1
  qr-attendance stats
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import select

from . import config
from .database import (
    DatabaseManager, StoreError, AttendanceService, CleanupService, AnalyticsService,
    Course, Student, ClassSession
)

logger = logging.getLogger(__name__)

DEMO_CLASS = ("C101", "Database Systems", "F001")
DEMO_STUDENTS = [
    ("S101", "Harshit", "harshit@example.com"),
    ("S102", "Somnath", "somnath@example.com"),
    ("S103", "Hemang", "hemang@example.com"),
    ("S104", "Adil", "adil@example.com"),
]
DEMO_SESSION = (datetime(2025, 9, 17, 10, 0, 0), "QR123")


def seed_demo_data(db: DatabaseManager) -> int:
    """
    Insert the sample class, its four students and one session.
    Existing rows are left alone.

    Returns:
        session_id of the demo session
    """
    class_id, course_name, faculty_id = DEMO_CLASS
    session_start, qr_code = DEMO_SESSION

    with db.transaction() as session:
        if session.get(Course, class_id) is None:
            session.add(Course(class_id=class_id, course_name=course_name, faculty_id=faculty_id))
            session.flush()

        for student_id, name, email in DEMO_STUDENTS:
            if session.get(Student, student_id) is None:
                session.add(Student(student_id=student_id, name=name, email=email, class_id=class_id))

        class_session = session.execute(
            select(ClassSession).where(ClassSession.qr_code == qr_code)
        ).scalar_one_or_none()
        if class_session is None:
            class_session = ClassSession(class_id=class_id, session_start=session_start, qr_code=qr_code)
            session.add(class_session)
        session.flush()
        session_id = class_session.session_id

    logger.info(f"Demo data seeded: class {class_id}, {len(DEMO_STUDENTS)} students, session {session_id}")
    return session_id


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qr-attendance", description="QR attendance maintenance")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database file")
    parser.add_argument("--url", type=str, default=None, help="SQLAlchemy database URL (overrides --db)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init", help="Create tables and default configuration")
    commands.add_parser("seed-demo", help="Insert the sample class, students and session")

    mark = commands.add_parser("mark", help="Record a scan")
    mark.add_argument("student_id")
    mark.add_argument("qr_code")
    mark.add_argument("--at", type=_parse_timestamp, default=None, help="Scan time (ISO 8601), default now")

    clean = commands.add_parser("clean", help="Remove duplicate scans and invalidate late ones")
    clean.add_argument("--session-id", type=int, default=None, help="Only reconcile this session")

    analytics = commands.add_parser("analytics", help="Store an attendance snapshot")
    analytics.add_argument("class_id")
    analytics.add_argument("session_id", type=int)

    commands.add_parser("stats", help="Show row counts")

    return parser


def run(args: argparse.Namespace) -> int:
    db = DatabaseManager(
        db_path=args.db,
        database_url=args.url or config.DATABASE_URL,
        echo=config.SQL_ECHO
    )

    try:
        if args.command == "init":
            if not db.initialize():
                print("Error: database initialization failed", file=sys.stderr)
                return 1
            print(f"Database ready at {db.url}")

        elif args.command == "seed-demo":
            session_id = seed_demo_data(db)
            print(f"Demo data ready (session_id={session_id})")

        elif args.command == "mark":
            scan_time = args.at or datetime.now()
            result = AttendanceService(db).mark_attendance(args.student_id, args.qr_code, scan_time)
            print(f"{result.outcome.value}: {result.message}")
            return 0 if result.success else 2

        elif args.command == "clean":
            report = CleanupService(db).clean(session_id=args.session_id)
            print(f"Removed {report.duplicates_removed} duplicate(s), "
                  f"invalidated {report.scans_invalidated} late scan(s)")

        elif args.command == "analytics":
            record = AnalyticsService(db).generate_analytics(args.class_id, args.session_id)
            print(f"Snapshot {record.analytics_id} ({record.report_date}): "
                  f"{record.total_attendees} present, {record.absentee_count} absent")

        elif args.command == "stats":
            for key, value in db.get_stats().items():
                print(f"{key}: {value}")

    except StoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    return 0


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format=config.LOG_FORMAT
    )

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
