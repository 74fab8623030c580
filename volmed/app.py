# --- imports (top of volmed/app.py) ---
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

# Resolve paths early so env vars are available before importing the app modules
BASE_DIR = Path(__file__).resolve().parent
ROOT_DIR = BASE_DIR.parent
ENV_PATH = BASE_DIR / ".env"

if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

load_dotenv(ENV_PATH, override=False)

from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from volmed.middleware.rate_limit import get_remote_address, limiter
from volmed.middleware.tracing import TRACE_ID_CTX_VAR, TracingMiddleware
from volmed.models import init_db
from volmed.routes import patient_routes
from volmed.services.storage import get_document_store
from volmed.services.storage_errors import StorageError
from volmed.utils.app import _env_csv
from volmed.utils.exceptions import (
    handle_http_exception,
    handle_storage_error,
    handle_unhandled_exception,
)

app = FastAPI(title="VolMed Backend", version="0.1.0")


# --- logging setup ---
class JsonFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        payload = {
            "timestamp": datetime.utcnow().isoformat(timespec="seconds") + "Z",
            "level": record.levelname,
            "function": record.funcName,
            "message": record.getMessage(),
            "trace_id": TRACE_ID_CTX_VAR.get(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("volmed")
    logger.setLevel(logging.INFO)
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    return logger


logger = configure_logging()

# ---- Tracing & rate limiting (slowapi) ----
app.add_middleware(TracingMiddleware)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.info({
        "function": "rate_limit",
        "path": str(request.url.path),
        "client": get_remote_address(request),
    })
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": "60"},
        content={
            "code": "TOO_MANY_REQUESTS",
            "message": "Too many requests. Please wait a bit and try again.",
            "trace_id": TRACE_ID_CTX_VAR.get(),
        },
    )


app.add_exception_handler(StarletteHTTPException, handle_http_exception)
app.add_exception_handler(HTTPException, handle_http_exception)
app.add_exception_handler(StorageError, handle_storage_error)
app.add_exception_handler(Exception, handle_unhandled_exception)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_env_csv("CORS_ORIGINS", ["http://localhost:5173", "http://127.0.0.1:5173"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(patient_routes.router)

# Everything under the uploads root is served read-only, unauthenticated
_store = get_document_store()
app.mount(
    _store.records.public_prefix or "/uploads",
    StaticFiles(directory=str(_store.settings.upload_root), check_dir=False),
    name="uploads",
)


# ---- Staging reaper ----
async def _sweep_staging_forever(interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(get_document_store().sweep_staging)
        except OSError:
            logger.exception("Staging sweep failed; retrying next interval")


_reaper_task: Optional[asyncio.Task] = None


@app.on_event("startup")
async def _startup():
    global _reaper_task
    init_db()
    interval = get_document_store().settings.staging_sweep_interval_seconds
    if interval > 0:
        _reaper_task = asyncio.create_task(_sweep_staging_forever(interval))
    logger.info({"function": "startup", "status": "ready", "staging_sweep_interval": interval})


@app.on_event("shutdown")
async def _shutdown():
    if _reaper_task is not None:
        _reaper_task.cancel()


@app.get("/api/health")
def health():
    return {"status": "ok", "time": int(time.time())}
