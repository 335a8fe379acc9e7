import os

from sqlalchemy.orm import Session

from database import SessionLocal, engine, Base
from logger import get_logger
# Model imports register every table on Base
from models.users import User
from models.students import Student
from models.teachers import Teacher
from models.exams import Subject, Mark
from models.results import Result
from security import hash_password

log = get_logger("seed")

DEFAULT_ADMIN = {
    "name": "Administrator",
    "email": os.getenv("ADMIN_EMAIL", "admin@example.com"),
    "password": os.getenv("ADMIN_PASSWORD", "admin123"),
}

# code, name, credit, semester
SUBJECTS = [
    ("BCA101", "Programming in C", 4.0, 1),
    ("BCA102", "Digital Logic", 3.0, 1),
    ("BCA103", "Mathematics I", 3.0, 1),
    ("BCA104", "English Communication", 2.0, 1),
    ("BCA201", "Data Structures", 4.0, 2),
    ("BCA202", "Database Management", 3.0, 2),
    ("BCA203", "Mathematics II", 3.0, 2),
    ("BCA204", "Web Technology", 3.0, 2),
]


def seed_admin(db: Session) -> User:
    admin = db.query(User).filter_by(email=DEFAULT_ADMIN["email"]).first()
    if admin:
        log.info("Admin exists: %s", admin.email)
        return admin

    admin = User(
        name=DEFAULT_ADMIN["name"],
        email=DEFAULT_ADMIN["email"],
        password_hash=hash_password(DEFAULT_ADMIN["password"]),
        role="admin",
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    log.info("Added admin: %s", admin.email)
    return admin


def seed_subjects(db: Session) -> int:
    added = 0
    for code, name, credit, semester in SUBJECTS:
        exists = db.query(Subject).filter_by(code=code).first()
        if not exists:
            db.add(Subject(code=code, name=name, credit=credit, full_marks=100.0, semester=semester))
            added += 1
            log.info("Added subject: %s %s", code, name)
    db.commit()
    return added


def seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin(db)
        seed_subjects(db)
        log.info("All data seeded")
    finally:
        db.close()


if __name__ == "__main__":
    seed_data()
