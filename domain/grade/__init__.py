"""Grade domain exports."""
from .entity import Grade, MUTABLE_FIELDS, new_grade_id, require_grade_id
from .repository import GradeRepository

__all__ = ["Grade", "GradeRepository", "MUTABLE_FIELDS", "new_grade_id", "require_grade_id"]
