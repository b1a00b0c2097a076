"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
from functools import partial

import pytest

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__BACKEND", "memory")

TEST_SECRET = os.environ["SECRET_KEY"]


@pytest.fixture
def grade_store():
    from infrastructure.repositories.in_memory_grade_repository import InMemoryGradeStore

    return InMemoryGradeStore()


@pytest.fixture
def grade_service(grade_store):
    from application.services.grade_service import GradeApplicationService
    from infrastructure.unit_of_work import InMemoryUnitOfWork

    return GradeApplicationService(uow_factory=partial(InMemoryUnitOfWork, grade_store))


@pytest.fixture
def verifier():
    from infrastructure.auth import JWTTokenVerifier

    return JWTTokenVerifier(TEST_SECRET)
