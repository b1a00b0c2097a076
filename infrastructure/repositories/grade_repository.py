"""SQLAlchemy-backed repository for grades."""
from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.grade import Grade, GradeRepository
from domain.common.exceptions import (
    DatabaseException,
    GradeAlreadyExistsException,
    GradeNotFoundException,
)
from infrastructure.models.grade import GradeModel


logger = get_logger(__name__)


class SQLAlchemyGradeRepository(GradeRepository):
    """Persist grades using SQLAlchemy ORM.

    Every statement is parameterized by the ORM. Driver errors are logged
    here and re-raised as DatabaseException so the caller never sees
    storage-engine detail.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: GradeModel) -> Grade:
        return Grade(
            grade_id=model.grade_id,
            student_id=model.student_id,
            course_id=model.course_id,
            semester=model.semester,
            grade_type=model.grade_type,
            item_id=model.item_id,
            grade_value=model.grade_value,
            graded_by=model.graded_by,
            comments=model.comments,
            graded_at=model.graded_at,
            updated_at=model.updated_at,
        )

    def _ordered(self, query):
        return query.order_by(GradeModel.graded_at.asc(), GradeModel.grade_id.asc())

    async def _fetch_model(self, grade_id: str) -> GradeModel | None:
        result = await self.session.execute(
            select(GradeModel).where(GradeModel.grade_id == grade_id)
        )
        return result.scalar_one_or_none()

    async def _list(self, query, operation: str) -> list[Grade]:
        try:
            result = await self.session.execute(self._ordered(query))
        except SQLAlchemyError as exc:
            logger.error("grade_query_failed", operation=operation, error=str(exc))
            raise DatabaseException(operation) from exc
        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, grade: Grade) -> Grade:
        model = GradeModel(
            grade_id=grade.grade_id,
            student_id=grade.student_id,
            course_id=grade.course_id,
            semester=grade.semester,
            grade_type=grade.grade_type,
            item_id=grade.item_id,
            grade_value=grade.grade_value,
            graded_by=grade.graded_by,
            comments=grade.comments,
            graded_at=grade.graded_at,
            updated_at=grade.updated_at,
        )
        try:
            if await self._fetch_model(grade.grade_id) is not None:
                raise GradeAlreadyExistsException(grade.grade_id)
            self.session.add(model)
            await self.session.flush()
        except IntegrityError as exc:
            # lost a race with a concurrent insert of the same id
            logger.warning("grade_insert_conflict", grade_id=grade.grade_id, error=str(exc))
            raise GradeAlreadyExistsException(grade.grade_id) from exc
        except SQLAlchemyError as exc:
            logger.error("grade_insert_failed", grade_id=grade.grade_id, error=str(exc))
            raise DatabaseException("create") from exc
        return self._to_entity(model)

    async def get_by_id(self, grade_id: str) -> Grade | None:
        try:
            model = await self._fetch_model(grade_id)
        except SQLAlchemyError as exc:
            logger.error("grade_query_failed", operation="get_by_id", error=str(exc))
            raise DatabaseException("get_by_id") from exc
        return self._to_entity(model) if model else None

    async def get_by_course(self, course_id: str, semester: str) -> list[Grade]:
        query = select(GradeModel).where(
            GradeModel.course_id == course_id,
            GradeModel.semester == semester,
        )
        return await self._list(query, "get_by_course")

    async def get_by_student_in_course(
        self, course_id: str, semester: str, student_id: str
    ) -> list[Grade]:
        query = select(GradeModel).where(
            GradeModel.course_id == course_id,
            GradeModel.semester == semester,
            GradeModel.student_id == student_id,
        )
        return await self._list(query, "get_by_student_in_course")

    async def get_by_student_in_semester(self, student_id: str, semester: str) -> list[Grade]:
        query = select(GradeModel).where(
            GradeModel.student_id == student_id,
            GradeModel.semester == semester,
        )
        return await self._list(query, "get_by_student_in_semester")

    async def update(self, grade: Grade) -> Grade:
        # single UPDATE; a row deleted by a concurrent transaction matches 0 rows
        stmt = (
            update(GradeModel)
            .where(GradeModel.grade_id == grade.grade_id)
            .values(
                student_id=grade.student_id,
                course_id=grade.course_id,
                semester=grade.semester,
                grade_type=grade.grade_type,
                item_id=grade.item_id,
                grade_value=grade.grade_value,
                graded_by=grade.graded_by,
                comments=grade.comments,
                updated_at=grade.updated_at,
            )
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("grade_update_failed", grade_id=grade.grade_id, error=str(exc))
            raise DatabaseException("update") from exc
        if result.rowcount == 0:
            raise GradeNotFoundException(grade.grade_id)
        return grade.copy()

    async def delete(self, grade_id: str) -> None:
        try:
            result = await self.session.execute(
                delete(GradeModel).where(GradeModel.grade_id == grade_id)
            )
        except SQLAlchemyError as exc:
            logger.error("grade_delete_failed", grade_id=grade_id, error=str(exc))
            raise DatabaseException("delete") from exc
        if result.rowcount == 0:
            raise GradeNotFoundException(grade_id)
