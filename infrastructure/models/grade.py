"""Grade database model definitions."""
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    String,
    Text,
    text,
)

from .base import Base


class GradeModel(Base):
    """ORM mapping for the grades table.

    Table mapping only; create/update rules live in domain.grade.entity.Grade.
    """

    __tablename__ = "grades"
    __table_args__ = (
        Index("ix_grades_course_semester", "course_id", "semester"),
        Index("ix_grades_student_semester", "student_id", "semester"),
        {
            "comment": "成绩表，每行对应一名学生在某课程某学期的一项成绩",
        },
    )

    grade_id = Column(
        String(64),
        primary_key=True,
        comment="成绩ID（uuid4，服务端生成）",
    )
    student_id = Column(String(64), nullable=False, comment="学生ID")
    course_id = Column(String(64), nullable=False, comment="课程ID")
    semester = Column(
        String(32),
        nullable=False,
        default="",
        server_default=text("''"),
        comment="学期，如 2025A / Winter_2025",
    )
    grade_type = Column(String(32), nullable=False, default="", server_default=text("''"), comment="成绩类型，如 Exam/Homework")
    item_id = Column(String(64), nullable=False, default="", server_default=text("''"), comment="子项ID（可为空串）")
    grade_value = Column(String(32), nullable=False, default="", server_default=text("''"), comment="分数或等级，存储层不解析")
    graded_by = Column(String(64), nullable=False, default="", server_default=text("''"), comment="评分人")
    comments = Column(Text, nullable=False, default="", comment="备注")
    graded_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="评分时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="更新时间",
    )

    def __repr__(self) -> str:
        return (
            "<GradeModel(grade_id='{grade_id}', student_id='{student_id}', "
            "course_id='{course_id}', semester='{semester}')>"
        ).format(
            grade_id=self.grade_id,
            student_id=self.student_id,
            course_id=self.course_id,
            semester=self.semester,
        )
