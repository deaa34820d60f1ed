"""
Cleanup Service for QR Attendance
=================================
Batch reconciliation of the attendance table.

Two passes, run in one transaction:
1. Deduplicate: keep the earliest scan per (student, session), delete the rest
2. Invalidate: mark scans later than session_start + scan window as Invalid

Session and student counters are left untouched: they record what was
accepted at scan time, not what is currently valid.
"""

import logging
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, update, delete, func

from .models import ClassSession, Attendance, AttendanceStatus, DEFAULT_SCAN_WINDOW_MINUTES
from .db_manager import get_db_manager, DatabaseManager

logger = logging.getLogger(__name__)


class CleanupReport(BaseModel):
    """Row changes made by one clean() run."""
    duplicates_removed: int = 0
    scans_invalidated: int = 0
    session_id: Optional[int] = None

    @property
    def changed(self) -> bool:
        return bool(self.duplicates_removed or self.scans_invalidated)


class CleanupService:
    """
    Reconciles stored attendance.

    Safe to run while scans are arriving and safe to run repeatedly: a second
    run right after the first changes nothing.

    Usage:
        report = CleanupService().clean()
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()
        self._cache_config()

    def _cache_config(self):
        minutes = self.db.get_config_int("scan_window_minutes", DEFAULT_SCAN_WINDOW_MINUTES)
        self.scan_window = timedelta(minutes=minutes)

    def refresh_config(self):
        self._cache_config()

    def clean(self, session_id: Optional[int] = None) -> CleanupReport:
        """
        Remove duplicate scans and invalidate late ones.

        Args:
            session_id: Limit both passes to one session. None means all.

        Returns:
            CleanupReport with the number of rows deleted and reclassified

        Raises:
            StoreError: the store failed; nothing was changed
        """
        scope = f"session {session_id}" if session_id is not None else "all sessions"
        logger.info(f"[CLEANUP] Starting reconciliation for {scope}")

        with self.db.transaction() as session:
            removed = self._remove_duplicates(session, session_id)
            invalidated = self._invalidate_late_scans(session, session_id)

        report = CleanupReport(
            duplicates_removed=removed,
            scans_invalidated=invalidated,
            session_id=session_id
        )
        logger.info(
            f"[CLEANUP] Done: {removed} duplicate(s) removed, {invalidated} late scan(s) invalidated"
        )
        return report

    def _remove_duplicates(self, session, session_id: Optional[int]) -> int:
        """Keep the earliest scan per pair (ties: lowest attendance_id)."""
        ranked = select(
            Attendance.attendance_id,
            func.row_number().over(
                partition_by=(Attendance.student_id, Attendance.session_id),
                order_by=(Attendance.scan_time.asc(), Attendance.attendance_id.asc())
            ).label("row_num")
        )
        if session_id is not None:
            ranked = ranked.where(Attendance.session_id == session_id)
        ranked = ranked.subquery()

        duplicate_ids = session.execute(
            select(ranked.c.attendance_id).where(ranked.c.row_num > 1)
        ).scalars().all()

        if not duplicate_ids:
            return 0

        session.execute(
            delete(Attendance)
            .where(Attendance.attendance_id.in_(duplicate_ids))
            .execution_options(synchronize_session=False)
        )
        logger.debug(f"Deleted duplicate attendance rows: {list(duplicate_ids)}")
        return len(duplicate_ids)

    def _invalidate_late_scans(self, session, session_id: Optional[int]) -> int:
        """Flag rows scanned after their session's window closed."""
        # Only sessions that still have rows to flag
        candidates = select(Attendance.session_id).where(
            Attendance.status != AttendanceStatus.INVALID.value
        ).distinct()
        sessions_query = select(ClassSession.session_id, ClassSession.session_start).where(
            ClassSession.session_id.in_(candidates)
        )
        if session_id is not None:
            sessions_query = sessions_query.where(ClassSession.session_id == session_id)

        invalidated = 0
        for sid, session_start in session.execute(sessions_query).all():
            cutoff = session_start + self.scan_window
            result = session.execute(
                update(Attendance)
                .where(
                    Attendance.session_id == sid,
                    Attendance.scan_time > cutoff,
                    Attendance.status != AttendanceStatus.INVALID.value
                )
                .values(status=AttendanceStatus.INVALID.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                logger.debug(f"Session {sid}: {result.rowcount} scan(s) after {cutoff} invalidated")
                invalidated += result.rowcount

        return invalidated
