"""
Configuration settings for QR Attendance.
Values come from the environment; per-deployment tunables that may change at
runtime live in the system_config table instead (see database.models).
"""
import os
from pathlib import Path

# ============== Configuration ==============
DATABASE_PATH = Path(os.environ.get("QR_ATTENDANCE_DB_PATH", "attendance.db"))
DATABASE_URL = os.environ.get("QR_ATTENDANCE_DB_URL") or None
SQL_ECHO = os.environ.get("QR_ATTENDANCE_SQL_ECHO", "false").lower() in ('true', '1', 'yes', 'on')
LOG_LEVEL = os.environ.get("QR_ATTENDANCE_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
BUSY_TIMEOUT_SECONDS = float(os.environ.get("QR_ATTENDANCE_BUSY_TIMEOUT", "30"))
# ==========================================
