# finance_api/main.py
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import DisconnectionError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from finance_api.api.v1 import (
    accounts, auth, budgets, categories, health, receipts, reports, transactions, transfers, users,
)
from finance_api.core.config import SimpleSettings
from finance_api.core.errors import FinanceError, StoreUnavailable
from finance_api.db.session import Database
from finance_api.services.blob_store import BlobStore, LocalBlobStore
from finance_api.services.receipts import ReceiptExtractor, TesseractReceiptExtractor
from finance_api.services.security import TokenVerifier

logger = logging.getLogger("finance_api")


def _error_body(message: str, errors=None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FinanceError)
    async def finance_error_handler(request: Request, exc: FinanceError):
        return JSONResponse(status_code=exc.kind.status_code, content=_error_body(exc.message, exc.errors))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("Validation errors", errors))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(OperationalError)
    @app.exception_handler(DisconnectionError)
    async def store_unavailable_handler(request: Request, exc: Exception):
        logger.error("Database unavailable during %s %s: %s", request.method, request.url.path, exc)
        err = StoreUnavailable()
        return JSONResponse(status_code=err.kind.status_code, content=_error_body(err.message))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Internal Server Error"))


def create_app(
    settings: Optional[SimpleSettings] = None,
    database: Optional[Database] = None,
    extractor: Optional[ReceiptExtractor] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    """
    Build the application. Every collaborator can be injected; anything left
    out is built from ``settings``.
    Run with: uvicorn --factory finance_api.main:create_app
    """
    settings = settings or SimpleSettings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    owns_database = database is None
    database = database or Database(settings.DATABASE_URL)
    os.makedirs(settings.UPLOAD_ROOT, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_database:
            database.dispose()

    app = FastAPI(title="Finance API", version="0.2.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database
    app.state.verifier = TokenVerifier(database.session, settings)
    app.state.extractor = extractor or TesseractReceiptExtractor(settings.TESSERACT_CMD)
    app.state.blob_store = blob_store or LocalBlobStore(settings.UPLOAD_ROOT, base_url="/uploads")

    # serve files under /uploads so browser can GET /uploads/<user>/<file>
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_ROOT), name="uploads")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    register_exception_handlers(app)

    prefix = settings.API_PREFIX
    app.include_router(health.router, prefix=prefix)
    app.include_router(auth.router, prefix=f"{prefix}/auth")
    app.include_router(users.router, prefix=f"{prefix}/users")
    app.include_router(accounts.router, prefix=f"{prefix}/accounts")
    app.include_router(categories.router, prefix=f"{prefix}/categories")
    app.include_router(transactions.router, prefix=f"{prefix}/transactions")
    app.include_router(transfers.router, prefix=f"{prefix}/transfers")
    app.include_router(budgets.router, prefix=f"{prefix}/budgets")
    app.include_router(reports.router, prefix=f"{prefix}/reports")
    app.include_router(receipts.router, prefix=f"{prefix}/receipts")

    @app.get("/")
    def root():
        return {"message": f"Finance API - visit {prefix}/health"}

    return app
