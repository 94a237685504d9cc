"""
Error kinds raised by the API.

Each one is an ``HTTPException`` so it can be raised from anywhere in a
request; ``main`` renders all of them as ``{"message": ...}``.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=message)
        self.extra = extra or {}

    def body(self) -> Dict[str, Any]:
        return {"message": self.detail, **self.extra}


class ValidationError(ApiError):
    status_code = 400


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class UpstreamError(ApiError):
    """Store, identity provider or image decoding failure."""

    status_code = 500
