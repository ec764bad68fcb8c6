# --- imports (top of urgentcare/app.py) ---
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

# Resolve paths early so env vars are available before importing the app modules
BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

# values already in the environment win over the file
load_dotenv(ENV_PATH, override=False)

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from urgentcare.middleware.tracing import TRACE_ID_CTX_VAR, TracingMiddleware
from urgentcare.models import init_db
from urgentcare.routes import (
    admin_routes,
    care_request_routes,
    catalog_routes,
    feed_routes,
    provider_routes,
)
from urgentcare.services.change_feed import ChangeFeed
from urgentcare.services.errors import CareError
from urgentcare.utils.exceptions import (
    handle_care_error,
    handle_http_exception,
    handle_unhandled_exception,
    handle_validation_error,
)
from urgentcare.utils.rate_limit import limiter, rate_limit_handler


# --- logging setup ---
class JsonFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "function": record.funcName,
            "message": record.getMessage(),
            "trace_id": TRACE_ID_CTX_VAR.get() or None,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging() -> logging.Logger:
    logger = logging.getLogger("urgentcare")
    logger.setLevel((os.getenv("LOG_LEVEL") or "INFO").upper())
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    return logger


logger = configure_logging()


def _cors_origins():
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


# --- app & router setup ---
app = FastAPI(title="Urgent Care Requests", version="0.1.0")

# one feed per process; routes reach it through app.state
app.state.change_feed = ChangeFeed()

# ---- Rate limiting (slowapi) ----
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_exception_handler(CareError, handle_care_error)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(StarletteHTTPException, handle_http_exception)
app.add_exception_handler(Exception, handle_unhandled_exception)


@app.on_event("startup")
def _init_db():
    init_db()
    logger.info({"function": "startup", "status": "ready"})


app.include_router(catalog_routes.router)
app.include_router(care_request_routes.router)
app.include_router(provider_routes.router)
app.include_router(admin_routes.router)
app.include_router(feed_routes.router)


@app.get("/health")
def health():
    return {"status": "ok"}
