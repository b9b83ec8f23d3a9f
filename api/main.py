"""
FastAPI application — POST /api/process, GET /health.

The browser never sees the workflow API key; every file goes through this
relay, which re-validates it, forwards it to Dify and flattens the reply.
"""

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from api.models import ErrorResponse, HealthResponse, ProcessResponse
from backend import config
from backend.errors import UploadError
from backend.models import FileHandle
from backend.relay import relay_upload, require_configuration

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ── Globals ──────────────────────────────────────────────────────────────────
_http: httpx.AsyncClient | None = None


def _build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=config.WORKFLOW_TIMEOUT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _http
    _http = _build_http_client()
    logger.info("Workflow HTTP client initialised.")
    yield
    await _http.aclose()
    _http = None


app = FastAPI(
    title="Receipt Rename Relay",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    body = ErrorResponse(error=exc.message, details=exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
    )


# ── POST /api/process ────────────────────────────────────────────────────────

@app.post(config.PROCESS_PATH, response_model=ProcessResponse, response_model_exclude_none=True)
async def process_file(request: Request):
    """
    Relay one receipt to the workflow API.

    Multipart fields: ``file`` (required), ``userId`` (optional).
    Configuration is checked before the body is parsed so that a misconfigured
    server never touches the upload.
    """
    api_url, api_key = require_configuration()

    try:
        form = await request.form()
        upload = await _read_upload(form.get("file"))
        user_id = form.get("userId") or config.DEFAULT_USER_ID
        if not isinstance(user_id, str):
            user_id = config.DEFAULT_USER_ID

        result = await relay_upload(_http, upload, user_id, api_url, api_key)
    except UploadError:
        raise
    except Exception as e:
        logger.exception("Relay processing failed")
        raise UploadError(
            str(e) or "処理に失敗しました",
            details=traceback.format_exc(),
        ) from e

    return ProcessResponse(filename=upload.name, **result.model_dump())


# ── GET /health ──────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        workflow_configured=bool(config.DIFY_API_URL and config.DIFY_API_KEY),
    )


# ── Helpers ──────────────────────────────────────────────────────────────────

async def _read_upload(field) -> FileHandle | None:
    """Turn the multipart ``file`` field into a FileHandle (``None`` if absent)."""
    if not isinstance(field, UploadFile):
        return None
    data = await field.read()
    return FileHandle(
        name=field.filename or "upload",
        content_type=field.content_type or "",
        data=data,
    )
