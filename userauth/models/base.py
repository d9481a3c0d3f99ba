"""SQLAlchemy declarative Base shared by all ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base; Base.metadata drives create_all in tests and Alembic autogenerate."""
