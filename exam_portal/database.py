"""Database configuration and session dependency."""

from typing import Iterator

from sqlmodel import Session, SQLModel, create_engine

from exam_portal.config import DATABASE_URL, SQL_ECHO

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=SQL_ECHO, connect_args=connect_args)


def create_db_and_tables() -> None:
    """Create database tables based on SQLModel metadata."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    with Session(engine) as session:
        yield session
