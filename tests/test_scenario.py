"""
Sample run: class C101 with four students and one QR session at 10:00.
"""
from datetime import datetime

from qr_attendance.database import (
    AttendanceService, CleanupService, AnalyticsService, ScanOutcome
)


def test_sample_day(db, demo_session_id, fetch):
    attendance = AttendanceService(db)

    scans = [
        ("S101", datetime(2025, 9, 17, 10, 5), ScanOutcome.ACCEPTED),
        ("S102", datetime(2025, 9, 17, 10, 7), ScanOutcome.ACCEPTED),
        ("S103", datetime(2025, 9, 17, 10, 20), ScanOutcome.INVALID_OR_EXPIRED_CODE),
        ("S104", datetime(2025, 9, 17, 10, 10), ScanOutcome.ACCEPTED),
    ]
    for student_id, scan_time, expected in scans:
        assert attendance.mark_attendance(student_id, "QR123", scan_time).outcome == expected

    assert fetch.session(db, demo_session_id).attendance_count == 3
    for student_id in ("S101", "S102", "S104"):
        assert fetch.student(db, student_id).total_valid_attendance == 1
    assert fetch.student(db, "S103").total_valid_attendance == 0

    record = AnalyticsService(db).generate_analytics("C101", demo_session_id)
    assert record.total_attendees == 3
    assert record.absentee_count == 1

    report = CleanupService(db).clean()
    assert not report.changed
    assert [row.status for row in fetch.attendance(db, demo_session_id)] == ["Present"] * 3
