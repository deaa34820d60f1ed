"""QR-code attendance recording, reconciliation and session analytics."""

from .database import (
    AttendanceService,
    AttendanceResult,
    CleanupService,
    CleanupReport,
    AnalyticsService,
    AnalyticsRecord,
    DatabaseManager,
    StoreError,
    ScanOutcome,
    AttendanceStatus,
)

__version__ = "1.0.0"

__all__ = [
    'AttendanceService',
    'AttendanceResult',
    'CleanupService',
    'CleanupReport',
    'AnalyticsService',
    'AnalyticsRecord',
    'DatabaseManager',
    'StoreError',
    'ScanOutcome',
    'AttendanceStatus',
]
