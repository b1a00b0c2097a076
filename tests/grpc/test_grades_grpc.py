import asyncio
from datetime import timedelta
from types import SimpleNamespace
from functools import partial
from typing import Tuple

import grpc
import pytest
import structlog
from grpc_health.v1 import health_pb2, health_pb2_grpc

from application.services.grade_service import GradeApplicationService
from core.config import GrpcSettings
from domain.common.exceptions import DatabaseException, OperationTimeoutException
from grpc_app.generated import grades_pb2, grades_pb2_grpc
from grpc_app.interceptors.exceptions import INTERNAL_ERROR_MESSAGE, ExceptionMappingInterceptor
from grpc_app.server import create_server
from grpc_app.services.grades_service import _within_deadline
from infrastructure.repositories.in_memory_grade_repository import (
    InMemoryGradeRepository,
    InMemoryGradeStore,
)
from infrastructure.unit_of_work import InMemoryUnitOfWork
from shared.codes import BusinessCode


pytestmark = pytest.mark.asyncio


async def _start(grade_service, verifier) -> Tuple[grpc.aio.Server, str]:
    server, port = await create_server(
        grade_service, verifier, GrpcSettings(host="127.0.0.1", port=0)
    )
    await server.start()
    return server, f"127.0.0.1:{port}"


@pytest.fixture
async def grades_stub(grade_service, verifier):
    """Real server (all interceptors) over the in-memory store on an ephemeral port."""
    server, target = await _start(grade_service, verifier)
    try:
        async with grpc.aio.insecure_channel(target) as channel:
            yield grades_pb2_grpc.GradesServiceStub(channel), channel
    finally:
        await server.stop(grace=None)


@pytest.fixture
def token(verifier):
    return verifier.issue("prof-x", roles=["staff"])


def _grade(**overrides) -> grades_pb2.SingleGrade:
    data = dict(
        student_id="student123",
        course_id="MATH101",
        semester="2025A",
        grade_type="Exam",
        item_id="final",
        grade_value="A",
        graded_by="Professor X",
        comments="Excellent work!",
    )
    data.update(overrides)
    return grades_pb2.SingleGrade(**data)


def _trailing(exc: grpc.aio.AioRpcError) -> dict:
    return dict(exc.trailing_metadata() or ())


async def test_add_then_get_course_grades(grades_stub, token):
    stub, _ = grades_stub
    added = await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade()))
    assert added.grade.grade_id
    assert added.grade.student_id == "student123"
    assert added.grade.HasField("graded_at")
    assert added.grade.updated_at == added.grade.graded_at

    resp = await stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(
        token=token, course_id="MATH101", semester="2025A"
    ))
    assert [g.grade_id for g in resp.grades] == [added.grade.grade_id]


async def test_course_filter_end_to_end(grades_stub, token):
    stub, _ = grades_stub
    ids = []
    for student, semester in (("s1", "2025A"), ("s2", "2025A"), ("s3", "2025B")):
        r = await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(
            token=token, grade=_grade(student_id=student, semester=semester)
        ))
        ids.append(r.grade.grade_id)

    resp = await stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(
        token=token, course_id="MATH101", semester="2025A"
    ))
    assert sorted(g.grade_id for g in resp.grades) == sorted(ids[:2])


async def test_student_queries(grades_stub, token):
    stub, _ = grades_stub
    await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade(student_id="s1")))
    await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(
        token=token, grade=_grade(student_id="s1", course_id="PHYS101")
    ))
    await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade(student_id="s2")))

    in_course = await stub.GetStudentCourseGrades(grades_pb2.GetStudentCourseGradesRequest(
        token=token, course_id="MATH101", semester="2025A", student_id="s1"
    ))
    assert [g.student_id for g in in_course.grades] == ["s1"]

    in_semester = await stub.GetStudentSemesterGrades(grades_pb2.GetStudentSemesterGradesRequest(
        token=token, student_id="s1", semester="2025A"
    ))
    assert sorted(g.course_id for g in in_semester.grades) == ["MATH101", "PHYS101"]

    empty = await stub.GetStudentSemesterGrades(grades_pb2.GetStudentSemesterGradesRequest(
        token=token, student_id="nobody", semester="2025A"
    ))
    assert list(empty.grades) == []


async def test_update_grade_value_only(grades_stub, token):
    stub, _ = grades_stub
    added = await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade(grade_value="B")))

    updated = await stub.UpdateSingleGrade(grades_pb2.UpdateSingleGradeRequest(
        token=token, grade=grades_pb2.SingleGrade(grade_id=added.grade.grade_id, grade_value="A+")
    ))
    assert updated.grade.grade_value == "A+"
    assert updated.grade.comments == "Excellent work!"
    assert updated.grade.course_id == "MATH101"
    assert updated.grade.graded_at == added.grade.graded_at
    assert updated.grade.updated_at.ToDatetime() >= added.grade.updated_at.ToDatetime()


async def test_update_errors(grades_stub, token):
    stub, _ = grades_stub
    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.UpdateSingleGrade(grades_pb2.UpdateSingleGradeRequest(
            token=token, grade=grades_pb2.SingleGrade(grade_id="missing", grade_value="F")
        ))
    assert ei.value.code() == grpc.StatusCode.NOT_FOUND
    assert _trailing(ei.value)["x-biz-code"] == str(BusinessCode.NOT_FOUND.value)

    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.UpdateSingleGrade(grades_pb2.UpdateSingleGradeRequest(
            token=token, grade=grades_pb2.SingleGrade(grade_value="F")
        ))
    assert ei.value.code() == grpc.StatusCode.INVALID_ARGUMENT


async def test_add_requires_student_and_course(grades_stub, token, grade_store):
    stub, _ = grades_stub
    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade(student_id="")))
    assert ei.value.code() == grpc.StatusCode.INVALID_ARGUMENT
    assert grade_store.grades == {}


async def test_add_with_overlong_field_is_invalid_argument(grades_stub, token):
    stub, _ = grades_stub
    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(
            token=token, grade=_grade(grade_value="x" * 100)
        ))
    assert ei.value.code() == grpc.StatusCode.INVALID_ARGUMENT


async def test_remove_then_remove_again(grades_stub, token):
    stub, _ = grades_stub
    added = await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade()))

    resp = await stub.RemoveSingleGrade(grades_pb2.RemoveSingleGradeRequest(
        token=token, grade_id=added.grade.grade_id
    ))
    assert resp.success is True

    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.RemoveSingleGrade(grades_pb2.RemoveSingleGradeRequest(
            token=token, grade_id=added.grade.grade_id
        ))
    assert ei.value.code() == grpc.StatusCode.NOT_FOUND


async def test_token_from_metadata(grades_stub, token):
    stub, _ = grades_stub
    resp = await stub.GetCourseGrades(
        grades_pb2.GetCourseGradesRequest(course_id="MATH101", semester="2025A"),
        metadata=(("authorization", f"Bearer {token}"),),
    )
    assert list(resp.grades) == []


async def test_request_id_is_echoed(grades_stub, token):
    stub, _ = grades_stub
    call = stub.GetCourseGrades(
        grades_pb2.GetCourseGradesRequest(token=token, course_id="MATH101", semester="2025A"),
        metadata=(("x-request-id", "req-42"),),
    )
    await call
    trailing = dict(await call.trailing_metadata())
    assert trailing["x-request-id"] == "req-42"


async def test_unauthenticated_calls_never_touch_the_store(grades_stub, grade_store, verifier):
    stub, _ = grades_stub
    expired = verifier.issue("prof-x", expires_in=timedelta(seconds=-1))
    calls = [
        lambda t: stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(token=t, course_id="MATH101", semester="2025A")),
        lambda t: stub.GetStudentCourseGrades(grades_pb2.GetStudentCourseGradesRequest(
            token=t, course_id="MATH101", semester="2025A", student_id="s1")),
        lambda t: stub.GetStudentSemesterGrades(grades_pb2.GetStudentSemesterGradesRequest(
            token=t, student_id="s1", semester="2025A")),
        lambda t: stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=t, grade=_grade())),
        lambda t: stub.UpdateSingleGrade(grades_pb2.UpdateSingleGradeRequest(
            token=t, grade=grades_pb2.SingleGrade(grade_id="g", grade_value="A"))),
        lambda t: stub.RemoveSingleGrade(grades_pb2.RemoveSingleGradeRequest(token=t, grade_id="g")),
    ]
    for make_call in calls:
        for bad in ("", "not-a-token", expired):
            with pytest.raises(grpc.aio.AioRpcError) as ei:
                await make_call(bad)
            assert ei.value.code() == grpc.StatusCode.UNAUTHENTICATED

    assert grade_store.calls == 0
    assert grade_store.grades == {}


async def test_expired_token_reports_biz_code(grades_stub, verifier):
    stub, _ = grades_stub
    expired = verifier.issue("prof-x", expires_in=timedelta(seconds=-1))
    with pytest.raises(grpc.aio.AioRpcError) as ei:
        await stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(
            token=expired, course_id="MATH101", semester="2025A"
        ))
    assert ei.value.code() == grpc.StatusCode.UNAUTHENTICATED
    assert _trailing(ei.value)["x-biz-code"] == str(BusinessCode.TOKEN_EXPIRED.value)


async def test_health_check_is_anonymous(grades_stub):
    _, channel = grades_stub
    health = health_pb2_grpc.HealthStub(channel)
    resp = await health.Check(health_pb2.HealthCheckRequest(service="grades.v1.GradesService"))
    assert resp.status == health_pb2.HealthCheckResponse.SERVING


class _BrokenRepository(InMemoryGradeRepository):
    async def get_by_course(self, course_id, semester):
        try:
            raise RuntimeError("connection to 10.0.0.5:5432 refused for user grades_admin")
        except RuntimeError as exc:
            raise DatabaseException("get_by_course") from exc


class _BrokenUnitOfWork(InMemoryUnitOfWork):
    repository_class = _BrokenRepository

    async def __aenter__(self):
        await super().__aenter__()
        self.grade_repository = self.repository_class(self._store)
        return self


async def test_storage_failure_is_sanitized_internal(verifier, token):
    svc = GradeApplicationService(uow_factory=partial(_BrokenUnitOfWork, InMemoryGradeStore()))
    server, target = await _start(svc, verifier)
    try:
        async with grpc.aio.insecure_channel(target) as channel:
            stub = grades_pb2_grpc.GradesServiceStub(channel)
            with pytest.raises(grpc.aio.AioRpcError) as ei:
                await stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(
                    token=token, course_id="MATH101", semester="2025A"
                ))
    finally:
        await server.stop(grace=None)

    assert ei.value.code() == grpc.StatusCode.INTERNAL
    assert ei.value.details() == INTERNAL_ERROR_MESSAGE
    assert "10.0.0.5" not in (ei.value.details() or "")
    assert _trailing(ei.value)["x-biz-code"] == str(BusinessCode.DATABASE_ERROR.value)


class _FakeContext:
    def __init__(self, remaining):
        self._remaining = remaining

    def time_remaining(self):
        return self._remaining


async def test_deadline_bounds_data_access():
    with pytest.raises(OperationTimeoutException):
        await _within_deadline(_FakeContext(0.01), asyncio.sleep(5), "get_course_grades")


async def test_no_deadline_waits_for_result():
    async def _value():
        return 7

    assert await _within_deadline(_FakeContext(None), _value(), "op") == 7


class _StalledRepository(InMemoryGradeRepository):
    async def get_by_course(self, course_id, semester):
        await asyncio.Event().wait()


class _StalledUnitOfWork(_BrokenUnitOfWork):
    repository_class = _StalledRepository


async def test_deadline_exceeded_carries_biz_code(verifier, token):
    svc = GradeApplicationService(uow_factory=partial(_StalledUnitOfWork, InMemoryGradeStore()))
    server, target = await _start(svc, verifier)
    try:
        async with grpc.aio.insecure_channel(target) as channel:
            stub = grades_pb2_grpc.GradesServiceStub(channel)
            with pytest.raises(grpc.aio.AioRpcError) as ei:
                await stub.GetCourseGrades(
                    grades_pb2.GetCourseGradesRequest(token=token, course_id="MATH101", semester="2025A"),
                    timeout=1.0,
                )
    finally:
        await server.stop(grace=None)

    assert ei.value.code() == grpc.StatusCode.DEADLINE_EXCEEDED
    assert _trailing(ei.value)["x-biz-code"] == str(BusinessCode.DEADLINE_EXCEEDED.value)


class _RecordingContext:
    def __init__(self):
        self.aborted = None
        self.trailing = None

    def set_trailing_metadata(self, metadata):
        self.trailing = metadata

    async def abort(self, code, details=""):
        self.aborted = (code, details)
        raise grpc.aio.AbortError()


async def test_exception_mapping_passes_cancellation_through():
    async def _cancelled(request, context):
        raise asyncio.CancelledError()

    async def _continuation(details):
        return grpc.unary_unary_rpc_method_handler(_cancelled)

    details = SimpleNamespace(method="/grades.v1.GradesService/GetCourseGrades", invocation_metadata=())
    handler = await ExceptionMappingInterceptor().intercept_service(_continuation, details)

    context = _RecordingContext()
    with pytest.raises(asyncio.CancelledError):
        await handler.unary_unary(grades_pb2.GetCourseGradesRequest(), context)
    assert context.aborted is None
    assert context.trailing is None


class _ContextRecordingService(GradeApplicationService):
    def __init__(self, uow_factory):
        super().__init__(uow_factory)
        self.log_context = []

    async def get_course_grades(self, course_id, semester):
        self.log_context.append(structlog.contextvars.get_contextvars())
        return await super().get_course_grades(course_id, semester)


async def test_caller_identity_is_bound_for_logging(verifier, token, grade_store):
    svc = _ContextRecordingService(uow_factory=partial(InMemoryUnitOfWork, grade_store))
    server, target = await _start(svc, verifier)
    try:
        async with grpc.aio.insecure_channel(target) as channel:
            stub = grades_pb2_grpc.GradesServiceStub(channel)
            await stub.GetCourseGrades(
                grades_pb2.GetCourseGradesRequest(token=token, course_id="MATH101", semester="2025A"),
                metadata=(("x-request-id", "req-7"),),
            )
    finally:
        await server.stop(grace=None)

    [bound] = svc.log_context
    assert bound["subject"] == "prof-x"
    assert bound["request_id"] == "req-7"
