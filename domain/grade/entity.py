"""Domain entity representing one grade record."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException

# Fields a partial update may overwrite; identity and creation time are excluded.
MUTABLE_FIELDS: tuple[str, ...] = (
    "student_id",
    "course_id",
    "semester",
    "grade_type",
    "item_id",
    "grade_value",
    "graded_by",
    "comments",
)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_grade_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Grade:
    """One student's score on one item in one course/semester.

    String fields use ``""`` for "not provided", matching the wire format,
    so the partial-update rule is a plain truthiness check.
    """

    grade_id: str = ""
    student_id: str = ""
    course_id: str = ""
    semester: str = ""
    grade_type: str = ""
    item_id: str = ""
    grade_value: str = ""
    graded_by: str = ""
    comments: str = ""
    graded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name in ("graded_at", "updated_at"):
                continue
            if getattr(self, f.name) is None:
                setattr(self, f.name, "")
        self.graded_at = _ensure_utc(self.graded_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def validate_for_create(self) -> None:
        if not self.student_id:
            raise DomainValidationException("student_id is required", field="student_id")
        if not self.course_id:
            raise DomainValidationException("course_id is required", field="course_id")

    def prepare_for_create(self, now: Optional[datetime] = None) -> "Grade":
        """Validate and return a copy with identity and timestamps assigned."""
        self.validate_for_create()
        ts = _ensure_utc(now) or _now()
        return replace(
            self,
            grade_id=self.grade_id or new_grade_id(),
            graded_at=ts,
            updated_at=ts,
        )

    def merged_with(self, patch: "Grade", now: Optional[datetime] = None) -> "Grade":
        """Apply ``patch``'s non-empty fields on top of this record.

        Empty fields in the patch leave the stored value untouched, so a
        field cannot be cleared through an update.
        """
        changes = {
            name: getattr(patch, name)
            for name in MUTABLE_FIELDS
            if getattr(patch, name)
        }
        return replace(self, **changes, updated_at=_ensure_utc(now) or _now())

    def copy(self) -> "Grade":
        return replace(self)


def require_grade_id(grade_id: Optional[str]) -> str:
    if not grade_id:
        raise DomainValidationException("grade_id is required", field="grade_id")
    return grade_id
