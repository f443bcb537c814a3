"""
Declarative base shared by every ProcureOps model
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All ProcureOps tables inherit from this."""
    pass
