from __future__ import annotations

from typing import Callable, Awaitable, Iterable, Optional

import grpc
import structlog

from core.logging_config import get_logger
from core.exceptions import UnauthorizedException
from application.ports.token_verifier import TokenVerifier
from grpc_app.interceptors.request_id import get_request_id


logger = get_logger(__name__)


DEFAULT_ANONYMOUS_METHODS = frozenset({
    "/grpc.health.v1.Health/Check",
    "/grpc.health.v1.Health/Watch",
})


def extract_token(request, metadata: dict) -> Optional[str]:
    """Token from the request's ``token`` field, else from call metadata.

    Metadata forms: ``authorization: Bearer <token>`` or ``access_token: <token>``.
    """
    token = getattr(request, "token", "") or None
    if token:
        return token
    auth = metadata.get("authorization") or metadata.get("Authorization")
    if auth and auth.lower().startswith("bearer "):
        token = auth[7:].strip()
    if not token:
        token = metadata.get("access_token")
    return token or None


class AuthInterceptor(grpc.aio.ServerInterceptor):
    """Bearer token authentication through an injected TokenVerifier.

    Runs inside ExceptionMappingInterceptor, so verifier failures
    (UnauthorizedException, TokenExpiredException) become UNAUTHENTICATED.
    A rejected call never reaches the servicer.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        anonymous_methods: Iterable[str] = DEFAULT_ANONYMOUS_METHODS,
    ) -> None:
        self._verifier = verifier
        self._anonymous_methods = frozenset(anonymous_methods)

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method
        if method in self._anonymous_methods:
            return handler

        md = dict(handler_call_details.invocation_metadata or [])

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            token = extract_token(request, md)
            if not token:
                logger.warning("grpc_auth_failed", method=method, reason="missing", request_id=get_request_id())
                raise UnauthorizedException("未提供认证凭据", reason="missing")

            try:
                claims = await self._verifier.verify(token)
            except Exception as exc:
                logger.warning(
                    "grpc_auth_failed",
                    method=method,
                    reason=type(exc).__name__,
                    request_id=get_request_id(),
                )
                raise

            # every log line below this call carries the caller identity
            structlog.contextvars.bind_contextvars(subject=claims.subject)
            try:
                return await handler.unary_unary(request, context)
            finally:
                structlog.contextvars.unbind_contextvars("subject")

        # unary-unary: 单请求 → 单响应；本服务的全部 RPC 均为该形态
        if handler.unary_unary:
            return grpc.unary_unary_rpc_method_handler(
                _unary_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )
        return handler
