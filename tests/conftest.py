# tests/conftest.py

import os

# Must be set before any application module reads the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["RANKING_POLICY"] = "competition"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base, get_db
from models.exams import Subject
from models.students import Student
from models.teachers import Teacher
from models.users import User
from security import hash_password, token_for

PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    main.app.dependency_overrides[get_db] = override_get_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


# ===========================
#   FACTORIES
# ===========================

@pytest.fixture
def make_user(db):
    def _make(role="admin", email=None, name=None):
        user = User(
            name=name or role.title(),
            email=email or f"{role}{db.query(User).count() + 1}@example.com",
            password_hash=hash_password(PASSWORD),
            role=role,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_student(db):
    def _make(roll_no, name=None, semester=1, program="BCA", email=None):
        user = None
        if email:
            user = User(
                name=name or f"Student {roll_no}",
                email=email,
                password_hash=hash_password(PASSWORD),
                role="student",
            )
        student = Student(
            roll_no=roll_no,
            student_name=name or f"Student {roll_no}",
            semester=semester,
            program=program,
            user=user,
        )
        db.add(student)
        db.commit()
        return student

    return _make


@pytest.fixture
def make_subject(db):
    def _make(code, credit=3.0, full_marks=100.0, name=None, semester=1):
        subject = Subject(code=code, name=name or code, credit=credit, full_marks=full_marks, semester=semester)
        db.add(subject)
        db.commit()
        return subject

    return _make


@pytest.fixture
def make_teacher(db):
    def _make(name="Teacher One", email="teacher@example.com", department="Computer Science"):
        user = User(name=name, email=email, password_hash=hash_password(PASSWORD), role="teacher")
        teacher = Teacher(teacher_name=name, department=department, user=user)
        db.add(teacher)
        db.commit()
        return teacher

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", email="admin@example.com", name="Admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def headers_for():
    return auth_headers
