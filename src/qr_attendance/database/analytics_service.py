"""
Analytics Service for QR Attendance
===================================
Per-session attendance snapshots.

Each generate_analytics() call appends a new row to the analytics table,
so the table is a history of what the store looked like at each call.
"""

import logging
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, func

from .models import Student, ClassSession, Attendance, Analytics, AttendanceStatus
from .db_manager import get_db_manager, DatabaseManager

logger = logging.getLogger(__name__)


class AnalyticsRecord(BaseModel):
    """Immutable copy of a stored analytics row."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    analytics_id: int
    class_id: str
    session_id: int
    report_date: date
    total_attendees: int
    absentee_count: int


class AnalyticsService:
    """
    Builds attendance snapshots for a class session.

    Usage:
        record = AnalyticsService().generate_analytics("C101", 1)
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()

    def generate_analytics(
        self,
        class_id: str,
        session_id: int,
        report_date: Optional[date] = None
    ) -> AnalyticsRecord:
        """
        Count attendees and absentees and store the snapshot.

        total_attendees is the number of Present rows for the session;
        absentee_count is class size minus that and is not clamped, so it goes
        negative when Present rows belong to students outside the class.

        Args:
            class_id: Class whose enrolled students form the denominator
            session_id: Session whose Present rows are counted
            report_date: Date to stamp on the row (defaults to today)

        Returns:
            AnalyticsRecord for the inserted row

        Raises:
            StoreError: the store failed (including unknown class/session ids)
        """
        report_date = report_date or date.today()

        with self.db.transaction() as session:
            total_students = session.execute(
                select(func.count()).select_from(Student).where(Student.class_id == class_id)
            ).scalar_one()

            present_count = session.execute(
                select(func.count()).select_from(Attendance).where(
                    Attendance.session_id == session_id,
                    Attendance.status == AttendanceStatus.PRESENT.value
                )
            ).scalar_one()

            absentee_count = total_students - present_count
            if absentee_count < 0:
                logger.warning(
                    f"[ANALYTICS] Negative absentee count for {class_id}/{session_id}: "
                    f"{present_count} present out of {total_students} enrolled"
                )

            analytics = Analytics(
                class_id=class_id,
                session_id=session_id,
                report_date=report_date,
                total_attendees=present_count,
                absentee_count=absentee_count
            )
            session.add(analytics)
            session.flush()

            record = AnalyticsRecord.model_validate(analytics)

        logger.info(
            f"[ANALYTICS] Generated for {class_id}/{session_id}: "
            f"{record.total_attendees} present, {record.absentee_count} absent"
        )
        return record

    # ============== Query Methods ==============

    def get_analytics_history(self, class_id: str, session_id: int) -> list:
        """All snapshots for a class session, oldest first."""
        with self.db.get_session() as session:
            rows = session.execute(
                select(Analytics)
                .where(Analytics.class_id == class_id, Analytics.session_id == session_id)
                .order_by(Analytics.analytics_id)
            ).scalars().all()
            return [AnalyticsRecord.model_validate(row) for row in rows]

    def get_session_summary(self, session_id: int) -> Optional[dict]:
        """
        Accepted count next to currently valid count for a session.

        accepted_count is the session counter (scans accepted at scan time);
        present_count and invalid_count reflect row status after cleanup. The
        two can differ once late scans have been invalidated.
        """
        with self.db.get_session() as session:
            class_session = session.get(ClassSession, session_id)
            if class_session is None:
                return None

            status_counts = dict(
                session.execute(
                    select(Attendance.status, func.count())
                    .where(Attendance.session_id == session_id)
                    .group_by(Attendance.status)
                ).all()
            )

            return {
                "session_id": session_id,
                "class_id": class_session.class_id,
                "accepted_count": class_session.attendance_count,
                "present_count": status_counts.get(AttendanceStatus.PRESENT.value, 0),
                "invalid_count": status_counts.get(AttendanceStatus.INVALID.value, 0)
            }
