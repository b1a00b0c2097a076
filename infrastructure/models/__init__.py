"""Infrastructure models package exports."""
from .base import Base, metadata
from .grade import GradeModel

__all__ = [
    "Base",
    "metadata",
    "GradeModel",
]
