# finance_api/schemas/common.py
"""Response envelope shared by every endpoint: ``{success, data, message?}``.

Money goes out as two-place strings so clients never see float rounding.
"""
import enum
import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel

CENT = Decimal("0.01")


def jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value.quantize(CENT))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, BaseModel):
        return jsonable(value.model_dump())
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable(data)
    return body


def pagination(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_records": total,
        "limit": limit,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
    }
