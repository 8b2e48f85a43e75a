# FILE: hospital_billing/schemas/common.py
from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class ApiError(BaseModel):
    msg: str
    # 422 only: [{"field": "body.status", "msg": "..."}]
    details: Optional[List[Dict[str, str]]] = None


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ApiResponse(BaseModel):
    status: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None
    meta: Optional[PageMeta] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)
