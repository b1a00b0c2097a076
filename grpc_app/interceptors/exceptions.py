from __future__ import annotations

from typing import Callable, Awaitable
import contextvars

import grpc
from pydantic import ValidationError

from core.logging_config import get_logger
from grpc_app.interceptors.request_id import REQUEST_ID_META_KEY, get_request_id
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "系统内部错误"

# Mark that the current request has been mapped to a gRPC status
_mapped_error: contextvars.ContextVar[bool] = contextvars.ContextVar("grpc_mapped_error", default=False)


def set_mapped_error() -> None:
    _mapped_error.set(True)


def is_mapped_error() -> bool:
    return bool(_mapped_error.get())


_STATUS_BY_CODE = {
    BusinessCode.PARAM_VALIDATION_ERROR: grpc.StatusCode.INVALID_ARGUMENT,
    BusinessCode.PARAM_ERROR: grpc.StatusCode.INVALID_ARGUMENT,
    BusinessCode.PARAM_MISSING: grpc.StatusCode.INVALID_ARGUMENT,
    BusinessCode.PARAM_TYPE_ERROR: grpc.StatusCode.INVALID_ARGUMENT,

    BusinessCode.NOT_FOUND: grpc.StatusCode.NOT_FOUND,
    BusinessCode.ALREADY_EXISTS: grpc.StatusCode.ALREADY_EXISTS,
    BusinessCode.TOKEN_INVALID: grpc.StatusCode.UNAUTHENTICATED,
    BusinessCode.TOKEN_EXPIRED: grpc.StatusCode.UNAUTHENTICATED,

    BusinessCode.UNAUTHORIZED: grpc.StatusCode.UNAUTHENTICATED,
    BusinessCode.FORBIDDEN: grpc.StatusCode.PERMISSION_DENIED,
    BusinessCode.PERMISSION_ERROR: grpc.StatusCode.PERMISSION_DENIED,

    BusinessCode.SERVICE_UNAVAILABLE: grpc.StatusCode.UNAVAILABLE,
    BusinessCode.SYSTEM_ERROR: grpc.StatusCode.INTERNAL,
    BusinessCode.DATABASE_ERROR: grpc.StatusCode.INTERNAL,
    BusinessCode.NETWORK_ERROR: grpc.StatusCode.UNAVAILABLE,
    BusinessCode.DEADLINE_EXCEEDED: grpc.StatusCode.DEADLINE_EXCEEDED,
}


def business_code_to_grpc_status(code: int) -> grpc.StatusCode:
    try:
        bc = BusinessCode(code)
    except ValueError:
        return grpc.StatusCode.FAILED_PRECONDITION
    return _STATUS_BY_CODE.get(bc, grpc.StatusCode.FAILED_PRECONDITION)


def _client_message(exc: BusinessException, status: grpc.StatusCode) -> str:
    # storage failures keep their detail in server logs only
    if status == grpc.StatusCode.INTERNAL:
        return INTERNAL_ERROR_MESSAGE
    return exc.message


class ExceptionMappingInterceptor(grpc.aio.ServerInterceptor):
    """Translate exceptions raised by inner handlers into gRPC statuses.

    Business codes travel as trailing metadata (x-biz-code, x-error-type).
    Cancellation (asyncio.CancelledError) is a BaseException and passes
    through untouched so the call ends as CANCELLED.
    """

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method

        async def _abort(
            context: grpc.aio.ServicerContext,
            status: grpc.StatusCode,
            code: int,
            error_type: str,
            message: str,
            log_message: str,
        ) -> None:
            trailing = [
                ("x-biz-code", str(int(code))),
                ("x-error-type", error_type),
            ]
            request_id = get_request_id()
            # replaces the trailing metadata set by RequestIdInterceptor
            if request_id:
                trailing.append((REQUEST_ID_META_KEY, request_id))
            context.set_trailing_metadata(tuple(trailing))
            set_mapped_error()
            logger.error(
                "grpc_mapped_error",
                method=method,
                code=str(int(code)),
                status=str(status),
                message=log_message,
                request_id=get_request_id(),
            )
            await context.abort(status, message)

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            try:
                return await handler.unary_unary(request, context)
            except grpc.aio.AbortError:
                # an inner interceptor already set the status
                raise
            except BusinessException as exc:
                status = business_code_to_grpc_status(exc.code)
                log_message = exc.message
                if exc.__cause__ is not None:
                    log_message = f"{exc.message}: {exc.__cause__}"
                await _abort(
                    context,
                    status,
                    exc.code,
                    exc.error_type or "BusinessError",
                    _client_message(exc, status),
                    log_message,
                )
            except ValidationError as exc:
                errors = exc.errors()
                first = errors[0] if errors else {}
                field = ".".join(str(loc) for loc in first.get("loc", []))
                message = f"{field}: {first.get('msg', 'invalid value')}" if field else "invalid request"
                await _abort(
                    context,
                    grpc.StatusCode.INVALID_ARGUMENT,
                    BusinessCode.PARAM_VALIDATION_ERROR,
                    "ValidationError",
                    message,
                    message,
                )
            except Exception as exc:
                await _abort(
                    context,
                    grpc.StatusCode.INTERNAL,
                    BusinessCode.SYSTEM_ERROR,
                    "SystemError",
                    INTERNAL_ERROR_MESSAGE,
                    str(exc),
                )

        if handler.unary_unary:
            return grpc.unary_unary_rpc_method_handler(
                _unary_unary,
                request_deserializer=handler.request_deserializer,
                response_serializer=handler.response_serializer,
            )
        return handler
