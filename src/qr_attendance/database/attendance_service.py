"""
Attendance Service for QR Attendance
====================================
Core business logic for recording scans.

A scan is checked, in order, against:
- the session window (QR code must match a session that started at most
  scan_window_minutes before the scan)
- enrollment (student belongs to the session's class)
- duplicates (one attendance row per student per session)

Accepted scans insert the attendance row and bump both counters in the same
transaction.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from .models import (
    Student, ClassSession, Attendance, AttendanceStatus, ScanOutcome,
    DEFAULT_SCAN_WINDOW_MINUTES
)
from .db_manager import get_db_manager, DatabaseManager

logger = logging.getLogger(__name__)


def to_store_time(value: datetime) -> datetime:
    """Timestamps are stored naive, in UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AttendanceResult:
    """
    Result of an attendance operation.
    Rejections are reported here, never raised.
    """

    def __init__(
        self,
        outcome: ScanOutcome,
        message: str,
        student_id: str,
        scan_time: datetime,
        session_id: Optional[int] = None,
        attendance_id: Optional[int] = None
    ):
        self.outcome = outcome
        self.message = message
        self.student_id = student_id
        self.scan_time = scan_time
        self.session_id = session_id
        self.attendance_id = attendance_id

    @property
    def success(self) -> bool:
        return self.outcome == ScanOutcome.ACCEPTED

    def __repr__(self):
        return f"<AttendanceResult(outcome={self.outcome.value}, student={self.student_id}, session={self.session_id})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for reporting."""
        result = {
            "success": self.success,
            "outcome": self.outcome.value,
            "message": self.message,
            "student_id": self.student_id,
            "scan_time": self.scan_time.isoformat()
        }

        if self.session_id is not None:
            result["session_id"] = self.session_id
        if self.attendance_id is not None:
            result["attendance_id"] = self.attendance_id

        return result


class AttendanceService:
    """
    Validates scan events and records accepted ones.

    Usage:
        service = AttendanceService()
        result = service.mark_attendance("S101", "QR123", datetime(2025, 9, 17, 10, 5))
        if result.outcome == ScanOutcome.ACCEPTED:
            ...
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        """
        Initialize attendance service.

        Args:
            db_manager: Optional DatabaseManager instance. Uses global if not provided.
        """
        self.db = db_manager or get_db_manager()
        self._cache_config()

    def _cache_config(self):
        """Cache frequently used configuration values."""
        minutes = self.db.get_config_int("scan_window_minutes", DEFAULT_SCAN_WINDOW_MINUTES)
        self.scan_window = timedelta(minutes=minutes)

        logger.debug(f"Config cached: scan_window={minutes}min")

    def refresh_config(self):
        """Refresh cached configuration from database."""
        self._cache_config()

    def mark_attendance(
        self,
        student_id: str,
        qr_code: str,
        scan_time: datetime
    ) -> AttendanceResult:
        """
        Validate a scan and, if accepted, record it.

        The lookups and the three writes run in one transaction: either the
        attendance row and both counter increments are committed together, or
        nothing is.

        Args:
            student_id: Scanning student
            qr_code: Token read from the session's QR code
            scan_time: When the scan happened (need not be now). Naive values
                are taken as UTC; aware values are converted to naive UTC.

        Returns:
            AttendanceResult with one of the ScanOutcome values

        Raises:
            StoreError: the store failed; no partial changes were kept
        """
        scan_time = to_store_time(scan_time)
        logger.info(f"[ATTENDANCE] Processing: {student_id} scanned {qr_code} at {scan_time}")

        with self.db.transaction() as session:
            # Step 1: Session lookup (code + window)
            class_session = self._find_open_session(session, qr_code, scan_time)
            if class_session is None:
                return self._reject(
                    ScanOutcome.INVALID_OR_EXPIRED_CODE,
                    "Invalid or expired QR code",
                    student_id, scan_time
                )

            session_id = class_session.session_id

            # Step 2: Enrollment
            student = session.get(Student, student_id)
            if student is None or student.class_id != class_session.class_id:
                return self._reject(
                    ScanOutcome.NOT_ENROLLED,
                    "Student not enrolled in class",
                    student_id, scan_time, session_id
                )

            # Step 3: Duplicate scan
            if self._has_scan(session, student_id, session_id):
                return self._reject(
                    ScanOutcome.DUPLICATE_SCAN,
                    "Duplicate scan detected",
                    student_id, scan_time, session_id
                )

            # Step 4: Record
            attendance = Attendance(
                student_id=student_id,
                session_id=session_id,
                scan_time=scan_time,
                status=AttendanceStatus.PRESENT.value
            )
            session.add(attendance)
            try:
                session.flush()
            except IntegrityError:
                # A concurrent scan for the same pair committed first and the
                # unique index rejected ours. Anything else is a real failure.
                session.rollback()
                if not self._has_scan(session, student_id, session_id):
                    raise
                return self._reject(
                    ScanOutcome.DUPLICATE_SCAN,
                    "Duplicate scan detected",
                    student_id, scan_time, session_id
                )

            self._increment_counters(session, student_id, session_id)

            attendance_id = attendance.attendance_id

        logger.info(f"[ATTENDANCE] ACCEPTED: {student_id} present for session {session_id}")

        return AttendanceResult(
            outcome=ScanOutcome.ACCEPTED,
            message="Attendance marked successfully",
            student_id=student_id,
            scan_time=scan_time,
            session_id=session_id,
            attendance_id=attendance_id
        )

    def _find_open_session(self, session, qr_code: str, scan_time: datetime) -> Optional[ClassSession]:
        """Return the session for qr_code if scan_time is inside its window (inclusive)."""
        class_session = session.execute(
            select(ClassSession).where(ClassSession.qr_code == qr_code)
        ).scalar_one_or_none()

        if class_session is None:
            return None

        window_start = class_session.session_start
        window_end = window_start + self.scan_window
        if not (window_start <= scan_time <= window_end):
            logger.debug(f"Scan at {scan_time} outside window {window_start} - {window_end}")
            return None

        return class_session

    def _has_scan(self, session, student_id: str, session_id: int) -> bool:
        existing = session.execute(
            select(Attendance.attendance_id).where(
                Attendance.student_id == student_id,
                Attendance.session_id == session_id
            ).limit(1)
        ).first()
        return existing is not None

    def _increment_counters(self, session, student_id: str, session_id: int):
        """Relative increments, evaluated by the store inside the transaction."""
        session.execute(
            update(ClassSession)
            .where(ClassSession.session_id == session_id)
            .values(attendance_count=ClassSession.attendance_count + 1)
        )
        session.execute(
            update(Student)
            .where(Student.student_id == student_id)
            .values(total_valid_attendance=Student.total_valid_attendance + 1)
        )

    def _reject(
        self,
        outcome: ScanOutcome,
        message: str,
        student_id: str,
        scan_time: datetime,
        session_id: Optional[int] = None
    ) -> AttendanceResult:
        logger.info(f"[ATTENDANCE] {outcome.value}: {student_id} - {message}")
        return AttendanceResult(
            outcome=outcome,
            message=message,
            student_id=student_id,
            scan_time=scan_time,
            session_id=session_id
        )

    # ============== Query Methods ==============

    def get_session_attendance(self, session_id: int) -> list:
        """Get all attendance rows of a session, earliest scan first."""
        with self.db.get_session() as session:
            rows = session.execute(
                select(Attendance)
                .where(Attendance.session_id == session_id)
                .order_by(Attendance.scan_time, Attendance.attendance_id)
            ).scalars().all()
            return [row.to_dict() for row in rows]
