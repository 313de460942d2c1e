from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from db_mongo import get_db, ensure_indexes
from settings import settings

from server.src.modules.errors import AppError, StorageUnavailable
from server.src.modules.logging_helpers import logger
from server.src.modules.levels_api import router as levels_router
from server.src.modules.tokens_api import router as tokens_router
from server.src.modules.items_api import router as items_router

# ---------- Lifespan (startup/shutdown) ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    logger.info("Startup complete (env=%s)", settings.app_env)
    yield

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()] or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Errors ----------
def _error(message: str, status_code: int, detail: str | None = None) -> JSONResponse:
    body = {"error": message}
    if detail and not settings.is_production:
        body["details"] = detail
    return JSONResponse(body, status_code=status_code)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.message, exc.status_code, exc.detail)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error("Invalid request parameters", 400, str(exc.errors()))

@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage error on %s %s", request.method, request.url.path)
    err = StorageUnavailable(detail=str(exc))
    return _error(err.message, err.status_code, err.detail)

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error("Internal server error", 500, repr(exc))

# ---------- Routers ----------
app.include_router(levels_router)
app.include_router(tokens_router)
app.include_router(items_router)

# ---------- Ops ----------
@app.get("/health")
def health():
    try:
        get_db().list_collection_names()
        return {"status": "ok", "mongo": "connected"}
    except PyMongoError as e:
        return {"status": "degraded", "error": str(e)}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
