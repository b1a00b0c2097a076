import asyncio
from functools import partial
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from application.services.grade_service import GradeApplicationService
from core.config import Settings, settings
from core.logging_config import get_logger
from grpc_app.server import create_server
from infrastructure.auth import JWTTokenVerifier
from infrastructure.database import (
    create_engine,
    create_session_factory,
    create_tables,
    ensure_database_exists,
    wait_for_database,
)
from infrastructure.repositories.in_memory_grade_repository import InMemoryGradeStore
from infrastructure.unit_of_work import InMemoryUnitOfWork, SQLAlchemyUnitOfWork


logger = get_logger(__name__)


async def build_grade_service(cfg: Settings) -> tuple[GradeApplicationService, Optional[AsyncEngine]]:
    """Wire the store selected by ``database.backend`` into the application service.

    Returns the engine (None for the memory backend) so the caller can dispose it.
    """
    if cfg.database.backend == "memory":
        logger.warning("grade_store_in_memory", message="grades are not persisted across restarts")
        store = InMemoryGradeStore()
        return GradeApplicationService(uow_factory=partial(InMemoryUnitOfWork, store)), None

    if cfg.database.auto_create:
        await ensure_database_exists(cfg.database.url)
    engine = create_engine(cfg.database.url, echo=cfg.database.echo)
    await wait_for_database(engine, retries=cfg.database.connect_retries)
    if cfg.database.auto_create:
        await create_tables(engine)
        logger.info("database_initialized", message="grades table ensured")
    session_factory = create_session_factory(engine)
    return GradeApplicationService(uow_factory=partial(SQLAlchemyUnitOfWork, session_factory)), engine


async def main() -> None:
    grade_service, engine = await build_grade_service(settings)
    verifier = JWTTokenVerifier(settings.SECRET_KEY, settings.ALGORITHM)

    server, port = await create_server(grade_service, verifier, settings.grpc)
    address = f"{settings.grpc.host}:{port}"
    logger.info("grpc_starting", address=address)
    await server.start()
    logger.info("grpc_started", address=address)
    try:
        await server.wait_for_termination()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("grpc_stopping")
        await server.stop(grace=5)
    finally:
        if engine is not None:
            await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
