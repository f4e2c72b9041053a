# finance_api/api/v1/health.py
from fastapi import APIRouter, Request

from finance_api.core.errors import StoreUnavailable
from finance_api.schemas.common import ok

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    if not request.app.state.db.ping():
        raise StoreUnavailable()
    return ok({"status": "ok", "database": "connected"})
