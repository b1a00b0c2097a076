from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from google.protobuf import timestamp_pb2

from application.dto import GradeCreateDTO, GradeUpdateDTO, GradeResponseDTO
from grpc_app.generated import grades_pb2


_FIELDS = (
    "student_id",
    "course_id",
    "semester",
    "grade_type",
    "item_id",
    "grade_value",
    "graded_by",
    "comments",
)


def _to_timestamp(dt: Optional[datetime]) -> Optional[timestamp_pb2.Timestamp]:
    if not dt:
        return None
    ts = timestamp_pb2.Timestamp()
    # dt is a datetime with tzinfo
    ts.FromDatetime(dt)
    return ts


def grade_dto_to_proto(dto: GradeResponseDTO) -> grades_pb2.SingleGrade:
    msg = grades_pb2.SingleGrade(
        grade_id=dto.grade_id,
        **{name: getattr(dto, name) or "" for name in _FIELDS},
    )
    ts = _to_timestamp(dto.graded_at)
    if ts:
        msg.graded_at.CopyFrom(ts)
    ts = _to_timestamp(dto.updated_at)
    if ts:
        msg.updated_at.CopyFrom(ts)
    return msg


def grades_to_proto(dtos: Iterable[GradeResponseDTO]) -> list[grades_pb2.SingleGrade]:
    return [grade_dto_to_proto(d) for d in dtos]


def proto_to_create_dto(msg: grades_pb2.SingleGrade) -> GradeCreateDTO:
    return GradeCreateDTO(
        grade_id=msg.grade_id,
        **{name: getattr(msg, name) for name in _FIELDS},
    )


def proto_to_update_dto(msg: grades_pb2.SingleGrade) -> GradeUpdateDTO:
    # timestamps on the wire are server-owned and ignored here
    return GradeUpdateDTO(
        grade_id=msg.grade_id,
        **{name: getattr(msg, name) for name in _FIELDS},
    )
