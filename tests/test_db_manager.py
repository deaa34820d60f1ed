import pytest
from sqlalchemy.exc import OperationalError

import qr_attendance.config as config
from qr_attendance.database import (
    AttendanceService, Course, DatabaseManager, StoreError, SystemConfig, get_db_manager, reset_db_manager
)


def test_default_config_is_seeded(db):
    assert db.get_config("scan_window_minutes") == "15"
    assert db.get_config_int("scan_window_minutes") == 15


def test_seeding_keeps_existing_values(tmp_path):
    path = tmp_path / "reopen.db"
    first = DatabaseManager(db_path=path)
    assert first.initialize()
    first.set_config("scan_window_minutes", "25")
    first.close()

    second = DatabaseManager(db_path=path)
    assert second.initialize()
    assert second.get_config_int("scan_window_minutes") == 25
    second.close()


def test_get_config_int_falls_back_on_garbage(db):
    db.set_config("scan_window_minutes", "soon")
    assert db.get_config_int("scan_window_minutes", 15) == 15
    assert db.get_config_int("missing_key", 7) == 7


def test_set_config_creates_new_keys(db):
    db.set_config("retention_days", "30", description="Keep rows this long")
    with db.get_session() as session:
        row = session.get(SystemConfig, "retention_days")
        assert row.value == "30"
        assert row.description == "Keep rows this long"


def test_transaction_commits_on_success(db):
    with db.transaction() as session:
        session.add(Course(class_id="C500", course_name="Compilers"))

    with db.get_session() as session:
        assert session.get(Course, "C500") is not None


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(ValueError):
        with db.transaction() as session:
            session.add(Course(class_id="C501", course_name="Networks"))
            session.flush()
            raise ValueError("abort")

    with db.get_session() as session:
        assert session.get(Course, "C501") is None


def test_store_errors_are_wrapped(db):
    with pytest.raises(StoreError) as excinfo:
        with db.transaction() as session:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    assert isinstance(excinfo.value.cause, OperationalError)
    assert isinstance(excinfo.value.__cause__, OperationalError)


def test_unopenable_database_raises_store_error(tmp_path):
    # A directory cannot be opened as a SQLite file.
    manager = DatabaseManager(db_path=tmp_path)
    assert manager.initialize() is False

    with pytest.raises(StoreError):
        with manager.get_session():
            pass


def test_stats(db, demo_session_id):
    stats = db.get_stats()

    assert stats["classes"] == 1
    assert stats["students"] == 4
    assert stats["sessions"] == 1
    assert stats["attendance_rows"] == 0
    assert stats["analytics_snapshots"] == 0
    assert stats["unique_scans_enforced"] is True
    assert stats["initialized"] is True


def test_in_memory_database():
    manager = DatabaseManager(db_path=":memory:")
    assert manager.initialize()
    assert manager.get_config_int("scan_window_minutes") == 15
    manager.close()


def test_global_manager_is_shared(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATABASE_PATH", tmp_path / "global.db")
    monkeypatch.setattr(config, "DATABASE_URL", None)
    reset_db_manager()
    try:
        manager = get_db_manager()
        assert get_db_manager() is manager
        assert AttendanceService().db is manager
        assert (tmp_path / "global.db").exists()
    finally:
        reset_db_manager()
