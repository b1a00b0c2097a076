"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, Field, model_serializer
from typing import Optional
from datetime import datetime, timezone


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class GradeFieldsDTO(DTOBase):
    """Fields shared by create and update; empty string means "not provided"."""
    grade_id: str = Field(default="", max_length=64)
    student_id: str = Field(default="", max_length=64)
    course_id: str = Field(default="", max_length=64)
    semester: str = Field(default="", max_length=32)
    grade_type: str = Field(default="", max_length=32)
    item_id: str = Field(default="", max_length=64)
    grade_value: str = Field(default="", max_length=32)
    graded_by: str = Field(default="", max_length=64)
    comments: str = ""


class GradeCreateDTO(GradeFieldsDTO):
    """成绩创建DTO（grade_id 为空时由服务端生成）"""


class GradeUpdateDTO(GradeFieldsDTO):
    """成绩部分更新DTO：仅非空字段覆盖已存储的值"""


class GradeResponseDTO(DTOBase):
    """成绩响应DTO"""
    grade_id: str
    student_id: str
    course_id: str
    semester: str
    grade_type: str
    item_id: str
    grade_value: str
    graded_by: str
    comments: str
    graded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
