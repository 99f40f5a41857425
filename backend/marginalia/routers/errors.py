"""HTTP error bodies shared by the routers: {"kind": ..., "message": ...}."""

from fastapi import HTTPException, status


def error_detail(kind: str, message: str) -> dict[str, str]:
    return {"kind": kind, "message": message}


def not_found(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=error_detail("not_found", message)
    )


def bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail("validation_error", message)
    )


def conflict(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error_detail("conflict", message))
