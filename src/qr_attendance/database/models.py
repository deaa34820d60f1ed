"""
Database Models for QR Attendance
=================================
SQLAlchemy ORM models for scan-based attendance tracking.

Tables:
- classes: Course offerings (immutable once created)
- students: Enrolled students with running valid-attendance counter
- sessions: Class sessions, each with a unique QR token and scan counter
- attendance: One row per accepted scan (unique per student per session)
- analytics: Append-only per-session attendance snapshots
- system_config: Configurable system parameters
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, LargeBinary, ForeignKey, Index
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

DEFAULT_SCAN_WINDOW_MINUTES = 15
UNIQUE_SCAN_INDEX_NAME = "uq_attendance_student_session"


class AttendanceStatus(str, Enum):
    """Status of a stored attendance row."""
    PRESENT = "Present"
    INVALID = "Invalid"


class ScanOutcome(str, Enum):
    """Result of validating a single scan event."""
    ACCEPTED = "Accepted"
    DUPLICATE_SCAN = "DuplicateScan"
    NOT_ENROLLED = "NotEnrolled"
    INVALID_OR_EXPIRED_CODE = "InvalidOrExpiredCode"


class Course(Base):
    """
    A course offering ("class").
    Created once per offering and not modified afterwards.
    """
    __tablename__ = 'classes'

    class_id = Column(String(10), primary_key=True)
    course_name = Column(String(50), nullable=True)
    faculty_id = Column(String(10), nullable=True)

    def __repr__(self):
        return f"<Course(id={self.class_id}, name={self.course_name})>"


class Student(Base):
    """
    Registered students.
    total_valid_attendance is only ever incremented by the attendance service.
    """
    __tablename__ = 'students'

    student_id = Column(String(10), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, nullable=True)
    class_id = Column(String(10), ForeignKey('classes.class_id'), nullable=True, index=True)
    total_valid_attendance = Column(Integer, default=0, nullable=False)
    photo = Column(LargeBinary, nullable=True)

    def __repr__(self):
        return f"<Student(id={self.student_id}, name={self.name}, class={self.class_id})>"

    def to_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "name": self.name,
            "email": self.email,
            "class_id": self.class_id,
            "total_valid_attendance": self.total_valid_attendance,
        }


class ClassSession(Base):
    """
    A single meeting of a class.
    Scans are accepted for [session_start, session_start + scan window].
    """
    __tablename__ = 'sessions'

    session_id = Column(Integer, primary_key=True, autoincrement=True)
    class_id = Column(String(10), ForeignKey('classes.class_id'), nullable=False, index=True)
    session_start = Column(DateTime, nullable=False)
    qr_code = Column(String(255), unique=True, nullable=False)
    attendance_count = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<ClassSession(id={self.session_id}, class={self.class_id}, start={self.session_start})>"

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "class_id": self.class_id,
            "session_start": self.session_start.isoformat() if self.session_start else None,
            "qr_code": self.qr_code,
            "attendance_count": self.attendance_count,
        }


class Attendance(Base):
    """
    One accepted scan.
    At most one row per (student_id, session_id); the unique index enforces it
    unless the store was opened without it (see DatabaseManager).
    """
    __tablename__ = 'attendance'

    attendance_id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String(10), ForeignKey('students.student_id'), nullable=False)
    session_id = Column(Integer, ForeignKey('sessions.session_id'), nullable=False, index=True)
    scan_time = Column(DateTime, nullable=False)
    status = Column(String(20), default=AttendanceStatus.PRESENT.value, nullable=False)

    __table_args__ = (
        Index(UNIQUE_SCAN_INDEX_NAME, "student_id", "session_id", unique=True),
    )

    def __repr__(self):
        return f"<Attendance(id={self.attendance_id}, student={self.student_id}, session={self.session_id}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "attendance_id": self.attendance_id,
            "student_id": self.student_id,
            "session_id": self.session_id,
            "scan_time": self.scan_time.isoformat() if self.scan_time else None,
            "status": self.status,
        }


class Analytics(Base):
    """
    Point-in-time attendance snapshot for a class session.
    Every generation appends a new row.
    """
    __tablename__ = 'analytics'

    analytics_id = Column(Integer, primary_key=True, autoincrement=True)
    class_id = Column(String(10), ForeignKey('classes.class_id'), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey('sessions.session_id'), nullable=False, index=True)
    report_date = Column(Date, nullable=False)
    total_attendees = Column(Integer, nullable=False)
    absentee_count = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<Analytics(id={self.analytics_id}, session={self.session_id}, attendees={self.total_attendees})>"


class SystemConfig(Base):
    """
    System configuration parameters.
    Allows runtime configuration without code changes.
    """
    __tablename__ = 'system_config'

    key = Column(String(100), primary_key=True)
    value = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SystemConfig(key={self.key}, value={self.value})>"


# Default configuration values
DEFAULT_CONFIG = {
    "scan_window_minutes": (
        str(DEFAULT_SCAN_WINDOW_MINUTES),
        "Minutes after session start during which a scan counts as Present",
    ),
}
