import logging
from typing import Any, List, Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class NotFoundError(TrackerError):
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.identifier = identifier


class ConflictError(TrackerError):
    status_code = 409

    def __init__(
        self,
        message: str,
        reason: str = "command_already_pending",
        command_id: Optional[int] = None,
        can_cancel: bool = False,
    ):
        super().__init__(message)
        self.reason = reason
        self.command_id = command_id
        self.can_cancel = can_cancel

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "reason": self.reason,
            "canCancel": self.can_cancel,
            "commandId": self.command_id,
        }


class PayloadValidationError(TrackerError):
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Any]] = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict:
        return {"error": self.message, "details": jsonable_encoder(self.details)}


async def tracker_error_handler(request: Request, exc: TrackerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Error no controlado en {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackerError, tracker_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
