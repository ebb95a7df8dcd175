from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError


def _error_response(request: Request, status_code: int, **content) -> JSONResponse:
    content["success"] = False
    content["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


async def http_exception_handler(request: Request, exc: HTTPException):
    response = _error_response(request, exc.status_code, detail=exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=exc.errors(),
        message="Validation Error",
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError):
    return _error_response(
        request,
        status.HTTP_409_CONFLICT,
        detail="Database conflict. A record with this identifier likely already exists.",
    )
