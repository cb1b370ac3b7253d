"""
REST envelope model.

Every JSON reply from the bookkeeping API has the shape
{success, data, count?, message?, error?}.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ApiErrorDetail(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    type: Optional[str] = None
    details: Any = None


class ApiResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool
    data: Any = None
    count: Optional[int] = None
    message: Optional[str] = None
    error: Optional[ApiErrorDetail | str] = None
    request_id: Optional[str] = None
