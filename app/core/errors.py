"""Domain errors.

Each one is an ``HTTPException`` so services can raise them directly and
FastAPI renders the right status code.
"""
from typing import Any, List, Optional

from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid input", errors: Optional[List[dict]] = None):
        super().__init__(status_code=400, detail=detail)
        self.errors = errors or []


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: Any = "Not found"):
        super().__init__(status_code=404, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=409, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=500, detail=detail)
