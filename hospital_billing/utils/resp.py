# FILE: hospital_billing/utils/resp.py
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from hospital_billing.schemas.common import ApiError, ApiResponse, PageMeta


def page_meta(page: int, limit: int, total: int) -> PageMeta:
    return PageMeta(page=page,
                    limit=limit,
                    total=total,
                    pages=math.ceil(total / limit) if total and limit else 0)


def _send(payload: ApiResponse, status_code: int) -> JSONResponse:
    # Decimal -> number, datetime -> ISO string
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def ok(data: Any = None, status_code: int = 200, *,
       meta: Optional[PageMeta] = None) -> JSONResponse:
    return _send(ApiResponse(status=True, data=data, meta=meta), status_code)


def err(msg: str, status_code: int = 400, *,
        details: Optional[List[Dict[str, str]]] = None) -> JSONResponse:
    return _send(ApiResponse(status=False, error=ApiError(msg=msg, details=details)),
                 status_code)
