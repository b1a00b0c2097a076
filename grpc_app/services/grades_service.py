from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import grpc

from application.services.grade_service import GradeApplicationService
from domain.common.exceptions import OperationTimeoutException
from grpc_app.generated import grades_pb2, grades_pb2_grpc
from grpc_app.mappers.grade import (
    grade_dto_to_proto,
    grades_to_proto,
    proto_to_create_dto,
    proto_to_update_dto,
)


T = TypeVar("T")

# Time kept back from the caller deadline to send the mapped status and trailers
DEADLINE_REPLY_MARGIN = 0.1


async def _within_deadline(
    context: grpc.aio.ServicerContext, aw: Awaitable[T], operation: str
) -> T:
    """Await ``aw`` no longer than the caller's remaining deadline.

    Gives up DEADLINE_REPLY_MARGIN seconds early so the DEADLINE_EXCEEDED
    status and its business code reach the client before the call expires.

    Client cancellation reaches the handler as asyncio.CancelledError and is
    left to propagate untouched.
    """
    remaining = context.time_remaining()
    if remaining is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout=max(0.0, remaining - DEADLINE_REPLY_MARGIN))
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutException(operation) from exc


class GradesService(grades_pb2_grpc.GradesServiceServicer):
    """Maps GradesService RPCs onto GradeApplicationService.

    Token verification happens in AuthInterceptor before these handlers run.
    """

    def __init__(self, grade_service: GradeApplicationService) -> None:
        self._svc = grade_service

    async def GetCourseGrades(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        grades = await _within_deadline(
            context,
            self._svc.get_course_grades(request.course_id, request.semester),
            "get_course_grades",
        )
        return grades_pb2.GetCourseGradesResponse(grades=grades_to_proto(grades))

    async def GetStudentCourseGrades(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        grades = await _within_deadline(
            context,
            self._svc.get_student_course_grades(
                request.course_id, request.semester, request.student_id
            ),
            "get_student_course_grades",
        )
        return grades_pb2.GetStudentCourseGradesResponse(grades=grades_to_proto(grades))

    async def GetStudentSemesterGrades(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        grades = await _within_deadline(
            context,
            self._svc.get_student_semester_grades(request.student_id, request.semester),
            "get_student_semester_grades",
        )
        return grades_pb2.GetStudentSemesterGradesResponse(grades=grades_to_proto(grades))

    async def AddSingleGrade(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        grade = await _within_deadline(
            context,
            self._svc.create_grade(proto_to_create_dto(request.grade)),
            "create_grade",
        )
        return grades_pb2.AddSingleGradeResponse(grade=grade_dto_to_proto(grade))

    async def UpdateSingleGrade(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        grade = await _within_deadline(
            context,
            self._svc.update_grade(proto_to_update_dto(request.grade)),
            "update_grade",
        )
        return grades_pb2.UpdateSingleGradeResponse(grade=grade_dto_to_proto(grade))

    async def RemoveSingleGrade(self, request, context: grpc.aio.ServicerContext):  # type: ignore[override]
        await _within_deadline(
            context,
            self._svc.delete_grade(request.grade_id),
            "delete_grade",
        )
        return grades_pb2.RemoveSingleGradeResponse(success=True)
