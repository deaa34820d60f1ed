"""
Database Module for QR Attendance
=================================
Provides SQLAlchemy-backed attendance tracking with:
- Scan validation (window, enrollment, duplicates)
- Reconciliation of duplicate and late scans
- Per-session analytics snapshots
"""

from .models import (
    Course, Student, ClassSession, Attendance, Analytics, SystemConfig,
    AttendanceStatus, ScanOutcome
)
from .db_manager import DatabaseManager, StoreError, get_db_manager, reset_db_manager
from .attendance_service import AttendanceService, AttendanceResult
from .cleanup_service import CleanupService, CleanupReport
from .analytics_service import AnalyticsService, AnalyticsRecord

__all__ = [
    'Course',
    'Student',
    'ClassSession',
    'Attendance',
    'Analytics',
    'SystemConfig',
    'AttendanceStatus',
    'ScanOutcome',
    'DatabaseManager',
    'StoreError',
    'get_db_manager',
    'reset_db_manager',
    'AttendanceService',
    'AttendanceResult',
    'CleanupService',
    'CleanupReport',
    'AnalyticsService',
    'AnalyticsRecord'
]
