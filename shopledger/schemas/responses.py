"""
Response envelope shared by every endpoint: {success, data?, error?}.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


def envelope(data: Any = None, warnings: Optional[List[str]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if warnings:
        body["warnings"] = warnings
    return body


def error_body(code: str, message: str) -> Dict[str, Any]:
    return ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump()
