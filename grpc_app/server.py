from __future__ import annotations

from typing import Sequence
import grpc
from grpc_health.v1 import health, health_pb2_grpc, health_pb2

from application.ports.token_verifier import TokenVerifier
from application.services.grade_service import GradeApplicationService
from core.config import GrpcSettings
from core.logging_config import get_logger
from grpc_app.interceptors.request_id import RequestIdInterceptor
from grpc_app.interceptors.logging import LoggingInterceptor
from grpc_app.interceptors.exceptions import ExceptionMappingInterceptor
from grpc_app.interceptors.auth import AuthInterceptor
from grpc_app.generated import grades_pb2_grpc, SERVICE_NAME
from grpc_app.services.grades_service import GradesService


logger = get_logger(__name__)


def _read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def build_interceptors(verifier: TokenVerifier) -> Sequence[grpc.aio.ServerInterceptor]:
    return (
        RequestIdInterceptor(),
        LoggingInterceptor(),
        ExceptionMappingInterceptor(),  # maps business exceptions
        AuthInterceptor(verifier),       # verifies token before any data access
    )


async def create_server(
    grade_service: GradeApplicationService,
    verifier: TokenVerifier,
    grpc_settings: GrpcSettings,
) -> tuple[grpc.aio.Server, int]:
    """Build the server and bind its port; returns the server and the bound port.

    Port 0 binds an ephemeral port (used by tests).
    """
    options = [
        ("grpc.max_concurrent_streams", max(1, grpc_settings.max_concurrent_streams)),
    ]
    server = grpc.aio.server(interceptors=build_interceptors(verifier), options=options)

    # Register services
    grades_pb2_grpc.add_GradesServiceServicer_to_server(GradesService(grade_service), server)

    # Health service
    health_svc = health.aio.HealthServicer()
    health_pb2_grpc.add_HealthServicer_to_server(health_svc, server)
    await health_svc.set("", health_pb2.HealthCheckResponse.SERVING)
    await health_svc.set(SERVICE_NAME, health_pb2.HealthCheckResponse.SERVING)

    # Bind address
    address = f"{grpc_settings.host}:{grpc_settings.port}"

    tls = grpc_settings.tls
    if tls.enabled:
        if not (tls.cert and tls.key):
            raise RuntimeError("GRPC TLS enabled but cert/key not provided")
        root_certificates = _read(tls.ca) if tls.ca else None
        creds = grpc.ssl_server_credentials(
            [(_read(tls.key), _read(tls.cert))],
            root_certificates=root_certificates,
            require_client_auth=bool(root_certificates),
        )
        port = server.add_secure_port(address, creds)
    else:
        port = server.add_insecure_port(address)

    logger.debug("grpc_server_built", address=address, port=port, tls=tls.enabled)
    return server, port
