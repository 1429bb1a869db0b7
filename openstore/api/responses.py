# openstore/api/responses.py
from typing import Any

from fastapi.responses import JSONResponse
from loguru import logger

from ..domain.errors import SubmissionError
from ..domain.schemas import Envelope


def success(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Envelope(success=True, data=data).model_dump(mode="json", exclude_none=True),
    )


def error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=Envelope(success=False, message=message).model_dump(mode="json", exclude_none=True),
    )


def submission_failure(exc: SubmissionError, generic_message: str) -> JSONResponse:
    """
    Translate a tagged pipeline error. Expected outcomes echo their message;
    infrastructure failures are logged and answered with generic_message.
    """
    if exc.is_infrastructure:
        logger.opt(exception=exc).error("{} failure: {}", exc.kind.value, exc.detail or exc.message)
        return error(generic_message, exc.status_code)
    logger.info("Submission rejected ({}): {}", exc.kind.value, exc.message)
    return error(exc.message, exc.status_code)


CREATE_FAILED = "There was an error creating your app, please try again later"
UPDATE_FAILED = "There was an error updating your app, please try again later"
SERVER_ERROR = "There was an error processing your request, please try again later"


def generic_failure(method: str) -> str:
    """Retryable message for the operation behind an HTTP method."""
    return {"POST": CREATE_FAILED, "PUT": UPDATE_FAILED}.get(method.upper(), SERVER_ERROR)
