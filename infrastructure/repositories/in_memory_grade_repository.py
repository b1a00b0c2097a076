"""Map-backed grade repository for tests and the ``memory`` store backend."""
from __future__ import annotations

import asyncio
from typing import Callable

from domain.grade import Grade, GradeRepository
from domain.common.exceptions import GradeAlreadyExistsException, GradeNotFoundException


class InMemoryGradeStore:
    """Shared state behind every InMemoryGradeRepository of one process.

    ``calls`` counts repository invocations so tests can assert that no
    data access happened.
    """

    def __init__(self) -> None:
        self.grades: dict[str, Grade] = {}
        self.lock = asyncio.Lock()
        self.calls = 0


class InMemoryGradeRepository(GradeRepository):
    def __init__(self, store: InMemoryGradeStore):
        self._store = store

    async def _select(self, predicate: Callable[[Grade], bool]) -> list[Grade]:
        self._store.calls += 1
        async with self._store.lock:
            matches = [g.copy() for g in self._store.grades.values() if predicate(g)]
        matches.sort(key=lambda g: (g.graded_at, g.grade_id))
        return matches

    async def create(self, grade: Grade) -> Grade:
        self._store.calls += 1
        async with self._store.lock:
            if grade.grade_id in self._store.grades:
                raise GradeAlreadyExistsException(grade.grade_id)
            self._store.grades[grade.grade_id] = grade.copy()
        return grade.copy()

    async def get_by_id(self, grade_id: str) -> Grade | None:
        self._store.calls += 1
        async with self._store.lock:
            found = self._store.grades.get(grade_id)
            return found.copy() if found else None

    async def get_by_course(self, course_id: str, semester: str) -> list[Grade]:
        return await self._select(
            lambda g: g.course_id == course_id and g.semester == semester
        )

    async def get_by_student_in_course(
        self, course_id: str, semester: str, student_id: str
    ) -> list[Grade]:
        return await self._select(
            lambda g: g.course_id == course_id
            and g.semester == semester
            and g.student_id == student_id
        )

    async def get_by_student_in_semester(self, student_id: str, semester: str) -> list[Grade]:
        return await self._select(
            lambda g: g.student_id == student_id and g.semester == semester
        )

    async def update(self, grade: Grade) -> Grade:
        self._store.calls += 1
        async with self._store.lock:
            if grade.grade_id not in self._store.grades:
                raise GradeNotFoundException(grade.grade_id)
            self._store.grades[grade.grade_id] = grade.copy()
        return grade.copy()

    async def delete(self, grade_id: str) -> None:
        self._store.calls += 1
        async with self._store.lock:
            if self._store.grades.pop(grade_id, None) is None:
                raise GradeNotFoundException(grade_id)
