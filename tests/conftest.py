from datetime import datetime

import pytest
from sqlalchemy import select

from qr_attendance.cli import seed_demo_data
from qr_attendance.database import DatabaseManager, Course, Student, ClassSession, Attendance

SESSION_START = datetime(2025, 9, 17, 10, 0, 0)


@pytest.fixture()
def db(tmp_path):
    manager = DatabaseManager(db_path=tmp_path / "attendance_test.db")
    assert manager.initialize()
    yield manager
    manager.close()


@pytest.fixture()
def legacy_db(tmp_path):
    # Store without the unique scan index, as left behind by a raw import.
    manager = DatabaseManager(db_path=tmp_path / "legacy_test.db", enforce_unique_scans=False)
    assert manager.initialize()
    yield manager
    manager.close()


@pytest.fixture()
def demo_session_id(db):
    return seed_demo_data(db)


@pytest.fixture()
def add_class():
    def _add(manager, class_id, course_name="Course", faculty_id="F999"):
        with manager.transaction() as session:
            session.add(Course(class_id=class_id, course_name=course_name, faculty_id=faculty_id))
    return _add


@pytest.fixture()
def add_student():
    def _add(manager, student_id, class_id, name=None):
        with manager.transaction() as session:
            session.add(Student(
                student_id=student_id,
                name=name or f"Student {student_id}",
                email=f"{student_id.lower()}@example.com",
                class_id=class_id
            ))
    return _add


@pytest.fixture()
def add_session():
    def _add(manager, class_id, qr_code, session_start=SESSION_START):
        with manager.transaction() as session:
            class_session = ClassSession(class_id=class_id, session_start=session_start, qr_code=qr_code)
            session.add(class_session)
            session.flush()
            return class_session.session_id
    return _add


@pytest.fixture()
def insert_scan():
    """Write an attendance row directly, bypassing validation."""
    def _insert(manager, student_id, session_id, scan_time, status="Present"):
        with manager.transaction() as session:
            row = Attendance(student_id=student_id, session_id=session_id, scan_time=scan_time, status=status)
            session.add(row)
            session.flush()
            return row.attendance_id
    return _insert


def fetch_student(manager, student_id):
    with manager.get_session() as session:
        return session.get(Student, student_id)


def fetch_session(manager, session_id):
    with manager.get_session() as session:
        return session.get(ClassSession, session_id)


def fetch_attendance(manager, session_id=None):
    with manager.get_session() as session:
        query = select(Attendance).order_by(Attendance.attendance_id)
        if session_id is not None:
            query = query.where(Attendance.session_id == session_id)
        return session.execute(query).scalars().all()


@pytest.fixture()
def fetch():
    class _Fetch:
        student = staticmethod(fetch_student)
        session = staticmethod(fetch_session)
        attendance = staticmethod(fetch_attendance)
    return _Fetch
