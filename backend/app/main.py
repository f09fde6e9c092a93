import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import get_settings
from backend.app.core.exceptions import StockLedgerError
from backend.app.core.logging import setup_logging

settings = get_settings()
setup_logging()
logger = logging.getLogger("backend.app")

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(StockLedgerError)
async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
    if exc.http_status >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "code": exc.code, "detail": exc.message})
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError):
    logger.exception("store_unavailable", extra={"path": request.url.path})
    return JSONResponse(
        status_code=503,
        content={"code": "STORE_UNAVAILABLE", "message": "Database unavailable, retry later"},
    )
