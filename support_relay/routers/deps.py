"""Shared dependencies and response helpers for the HTTP routers."""

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from support_relay.services.broadcast import Broadcaster
from support_relay.services.result import INVALID_INPUT, NOT_FOUND, Result

MSG_INVALID_BODY = "Invalid request body"


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def status_for(result: Result) -> int:
    if result.is_client_error:
        return status.HTTP_400_BAD_REQUEST
    if result.error_code == NOT_FOUND:
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(result: Result) -> JSONResponse:
    return JSONResponse(status_code=status_for(result), content={"error": result.error})


def invalid_body_response() -> JSONResponse:
    return error_response(Result.failure(MSG_INVALID_BODY, INVALID_INPUT))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies as invalid input instead of FastAPI's 422."""
    return invalid_body_response()
