"""
成绩应用服务（application/services）- 校验不变量并编排仓储调用
"""
from typing import Callable, List

from domain.grade import Grade, require_grade_id
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.common.exceptions import GradeNotFoundException
from application.dto import GradeCreateDTO, GradeUpdateDTO, GradeResponseDTO
from core.logging_config import get_logger


logger = get_logger(__name__)


class GradeApplicationService:
    """Data-access contract for grades.

    Each operation runs inside its own unit of work: it either commits one
    write that passes validation, or raises and rolls back.
    """

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create_grade(self, data: GradeCreateDTO) -> GradeResponseDTO:
        """Persist a new grade.

        Raises DomainValidationException when student_id or course_id is
        empty (nothing is written), GradeAlreadyExistsException when a
        caller-supplied grade_id is taken.
        """
        grade = Grade(**data.model_dump()).prepare_for_create()
        async with self._uow_factory() as uow:
            created = await uow.grade_repository.create(grade)
        logger.info(
            "grade_created",
            grade_id=created.grade_id,
            student_id=created.student_id,
            course_id=created.course_id,
            semester=created.semester,
        )
        return self._to_response_dto(created)

    async def get_course_grades(self, course_id: str, semester: str) -> List[GradeResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            grades = await uow.grade_repository.get_by_course(course_id, semester)
        return [self._to_response_dto(g) for g in grades]

    async def get_student_course_grades(
        self, course_id: str, semester: str, student_id: str
    ) -> List[GradeResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            grades = await uow.grade_repository.get_by_student_in_course(
                course_id, semester, student_id
            )
        return [self._to_response_dto(g) for g in grades]

    async def get_student_semester_grades(
        self, student_id: str, semester: str
    ) -> List[GradeResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            grades = await uow.grade_repository.get_by_student_in_semester(student_id, semester)
        return [self._to_response_dto(g) for g in grades]

    async def update_grade(self, data: GradeUpdateDTO) -> GradeResponseDTO:
        """Partial update by identity; empty fields keep their stored value."""
        grade_id = require_grade_id(data.grade_id)
        patch = Grade(**data.model_dump())
        async with self._uow_factory() as uow:
            existing = await uow.grade_repository.get_by_id(grade_id)
            if existing is None:
                raise GradeNotFoundException(grade_id)
            updated = await uow.grade_repository.update(existing.merged_with(patch))
        logger.info(
            "grade_updated",
            grade_id=updated.grade_id,
            fields=[name for name, value in data.model_dump(exclude={"grade_id"}).items() if value],
        )
        return self._to_response_dto(updated)

    async def delete_grade(self, grade_id: str) -> None:
        """Remove a grade permanently; a repeated delete raises GradeNotFoundException."""
        grade_id = require_grade_id(grade_id)
        async with self._uow_factory() as uow:
            await uow.grade_repository.delete(grade_id)
        logger.info("grade_deleted", grade_id=grade_id)

    def _to_response_dto(self, grade: Grade) -> GradeResponseDTO:
        """将领域实体转换为响应DTO"""
        return GradeResponseDTO(
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
