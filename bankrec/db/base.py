"""Declarative base for all ORM tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for every table owned or read by the engine."""
