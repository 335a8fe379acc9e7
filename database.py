from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from config import get_settings

SQLALCHEMY_DATABASE_URL = get_settings().DATABASE_URL

# SQLite needs this flag because FastAPI serves sync routes from a threadpool
connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Commit everything done inside the block, or roll all of it back.

    Used around the mark-write / aggregate / re-rank sequence so the three
    steps land together.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
