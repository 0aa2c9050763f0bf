"""FastAPI wrapper for the document assembly pipeline."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hmac
import importlib.metadata
import json
import logging
import os
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from core.documents.registry import DocumentRegistry, cached_document_registry
from core.orchestrator.pipeline import assemble_document
from core.templates.package import DOCX_MEDIA_TYPE
from core.templates.store import DirectoryTemplateStore
from core.usage.usage_log import JsonlUsageLog, LoggerUsageLog, UsageRecorder
from core.utils.errors import (
    AssemblyError,
    MalformedPayloadError,
    TemplateError,
    TemplateNotFoundError,
)

app = FastAPI(title="docgen API", version="0.1.0")
logger = logging.getLogger("docgen.api")

REQUEST_ID_HEADER = "X-Docgen-Request-Id"
TEMPLATE_ID_HEADER = "X-Docgen-Template-Id"

_BASIC_AUTH_REALM = "docgen"
_FALSE_VALUES = frozenset({"0", "false", "off", "no"})
_QUEUE_POLL_SECONDS = 0.01

# Template misconfiguration is a server-side fault, not a client error.
_SERVER_SIDE_ERRORS = (TemplateNotFoundError, TemplateError)


@dataclass(frozen=True)
class ApiSettings:
    """Per-request snapshot of ``DOCGEN_*`` environment configuration."""

    templates_dir: Path = Path("templates")
    document_types_path: str | None = None
    usage_log_path: str | None = None
    credentials: dict[str, str] = field(default_factory=dict)
    max_concurrency: int = 4
    queue_timeout_seconds: float = 0.0
    meta_enabled: bool = True
    commit_sha: str = "unknown"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.credentials)

    @classmethod
    def from_env(cls) -> ApiSettings:
        defaults = cls()
        templates_dir = _env_text("DOCGEN_TEMPLATES_DIR")
        return cls(
            templates_dir=Path(templates_dir).expanduser()
            if templates_dir
            else defaults.templates_dir,
            document_types_path=_env_text("DOCGEN_DOCUMENT_TYPES"),
            usage_log_path=_env_text("DOCGEN_USAGE_LOG_PATH"),
            credentials=_parse_credentials(os.getenv("DOCGEN_BASIC_AUTH", "")),
            max_concurrency=_env_int(
                "DOCGEN_MAX_CONCURRENCY", defaults.max_concurrency, minimum=1
            ),
            queue_timeout_seconds=_env_float(
                "DOCGEN_QUEUE_TIMEOUT_SECONDS", defaults.queue_timeout_seconds
            ),
            meta_enabled=(_env_text("DOCGEN_ENABLE_META") or "1").lower() not in _FALSE_VALUES,
            commit_sha=_env_text("DOCGEN_COMMIT_SHA") or defaults.commit_sha,
        )


@dataclass
class _ConcurrencyLimiter:
    max_concurrency: int
    queue_timeout_seconds: float
    semaphore: threading.BoundedSemaphore


class ApiRequestError(Exception):
    """Request failure raised inside the API layer with its HTTP status."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}
        self.headers = headers or {}


_limiter_lock = threading.Lock()
_limiter: _ConcurrencyLimiter | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag each request with an id and echo it on every response."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        response = _failure_response(
            request_id,
            ApiRequestError(
                status_code=500,
                error_code="INTERNAL_ERROR",
                message="internal server error",
                detail={"path": request.url.path},
            ),
            stage="middleware",
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Document type table: tags, groups, template buckets, placeholders."""

    request_id = _request_id(request)
    settings = ApiSettings.from_env()

    try:
        if not settings.meta_enabled:
            raise ApiRequestError(
                status_code=404,
                error_code="NOT_FOUND",
                message="meta endpoint is disabled",
                detail={"path": request.url.path},
            )
        _require_user(request, settings)
        registry = _load_registry(settings)
    except ApiRequestError as exc:
        return _failure_response(request_id, exc, stage="meta", log=False)

    return JSONResponse(
        status_code=200,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "supported_document_types": registry.supported_document_types(),
            "accepted_tags": registry.supported_tags(),
            "document_types": _document_type_summaries(registry),
            "version": app.version,
            "build": {"version": _package_version(), "commit": settings.commit_sha},
        },
    )


@app.post("/v1/generate", response_model=None)
async def generate_v1(request: Request) -> Response:
    """Assemble one document from a flat JSON payload and return the .docx."""

    started = time.perf_counter()
    request_id = _request_id(request)
    settings = ApiSettings.from_env()
    stage = "authenticate"
    limiter: _ConcurrencyLimiter | None = None
    slot_acquired = False

    try:
        user = _require_user(request, settings)

        stage = "acquire_slot"
        limiter = _get_concurrency_limiter(settings)
        slot_acquired, queue_wait_ms = await _try_acquire_concurrency_slot(limiter)
        if not slot_acquired:
            raise ApiRequestError(
                status_code=429,
                error_code="TOO_MANY_REQUESTS",
                message="server busy",
                detail={
                    "max_concurrency": limiter.max_concurrency,
                    "queue_timeout_seconds": limiter.queue_timeout_seconds,
                    "queue_wait_ms": queue_wait_ms,
                },
            )

        stage = "parse_body"
        payload = await _load_json_body(request)

        stage = "load_config"
        registry = _load_registry(settings)
        _log_event(
            logging.INFO,
            "start",
            request_id,
            document_type=payload.get("page"),
            user=user,
            queue_wait_ms=queue_wait_ms,
        )

        stage = "assemble"
        output = await asyncio.to_thread(
            assemble_document,
            payload,
            template_store=DirectoryTemplateStore(settings.templates_dir),
            registry=registry,
            usage_recorder=_cached_usage_recorder(settings.usage_log_path),
            user=user,
        )
    except ApiRequestError as exc:
        return _failure_response(request_id, exc, stage=stage)
    except AssemblyError as exc:
        status_code = 500 if isinstance(exc, _SERVER_SIDE_ERRORS) else 400
        return _failure_response(
            request_id,
            ApiRequestError(
                status_code=status_code,
                error_code=exc.error_code,
                message=exc.message,
                detail=exc.detail,
            ),
            stage=stage,
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            request_id,
            ApiRequestError(
                status_code=500,
                error_code="INTERNAL_ERROR",
                message="internal server error",
                detail={"error": str(exc), "total_ms": _elapsed_ms(started)},
            ),
            stage=stage,
        )
    finally:
        if slot_acquired and limiter is not None:
            limiter.semaphore.release()

    _log_event(
        logging.INFO,
        "done",
        request_id,
        document_type=output.document_type,
        template_id=output.template_id,
        entry_count=output.entry_count,
        replaced_count=output.report.replaced_count,
        unresolved_count=len(output.report.unresolved_tokens),
        total_ms=_elapsed_ms(started),
    )
    return Response(
        content=output.content,
        media_type=DOCX_MEDIA_TYPE,
        headers={
            REQUEST_ID_HEADER: request_id,
            TEMPLATE_ID_HEADER: output.template_id,
            "Content-Disposition": f'attachment; filename="{_download_name(output.document_type)}"',
        },
    )


async def _load_json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid UTF-8 JSON",
            detail={"error": str(exc)},
        ) from exc

    if not isinstance(payload, dict):
        raise MalformedPayloadError(
            "Request payload must be a JSON object",
            detail={"type": type(payload).__name__},
        )
    return payload


def _load_registry(settings: ApiSettings) -> DocumentRegistry:
    try:
        return cached_document_registry(settings.document_types_path)
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="INVALID_CONFIGURATION",
            message="document type table is invalid",
            detail={"error": str(exc)},
        ) from exc


@lru_cache(maxsize=4)
def _cached_usage_recorder(path: str | None) -> UsageRecorder:
    """One recorder (and worker thread) per usage log destination."""

    if path is None:
        return UsageRecorder(LoggerUsageLog())
    return UsageRecorder(JsonlUsageLog(Path(path)))


def _require_user(request: Request, settings: ApiSettings) -> str:
    """Return the Basic-auth user name, or ``""`` when auth is disabled."""

    if not settings.auth_enabled:
        return ""
    user = _basic_auth_user(request.headers.get("authorization"), settings.credentials)
    if user is None:
        raise ApiRequestError(
            status_code=401,
            error_code="UNAUTHORIZED",
            message="authentication required",
            detail={"path": request.url.path, "auth_enabled": True},
            headers={"WWW-Authenticate": f'Basic realm="{_BASIC_AUTH_REALM}"'},
        )
    return user


def _basic_auth_user(header: str | None, credentials: dict[str, str]) -> str | None:
    scheme, _, token = (header or "").partition(" ")
    if scheme.lower() != "basic" or not token:
        return None

    try:
        decoded = base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
    except (ValueError, UnicodeDecodeError, binascii.Error):
        return None

    username, sep, password = decoded.partition(":")
    username = username.strip()
    expected = credentials.get(username)
    if not sep or expected is None:
        return None
    if not hmac.compare_digest(password.strip().encode(), expected.encode()):
        return None
    return username


def _parse_credentials(raw: str) -> dict[str, str]:
    """Parse ``user:password[,user:password]``; malformed pairs are skipped."""

    credentials: dict[str, str] = {}
    for pair in raw.split(","):
        username, sep, password = pair.strip().partition(":")
        if sep and username and password:
            credentials[username] = password
    return credentials


def _get_concurrency_limiter(settings: ApiSettings) -> _ConcurrencyLimiter:
    global _limiter

    with _limiter_lock:
        if (
            _limiter is None
            or _limiter.max_concurrency != settings.max_concurrency
            or _limiter.queue_timeout_seconds != settings.queue_timeout_seconds
        ):
            _limiter = _ConcurrencyLimiter(
                max_concurrency=settings.max_concurrency,
                queue_timeout_seconds=settings.queue_timeout_seconds,
                semaphore=threading.BoundedSemaphore(value=settings.max_concurrency),
            )
        return _limiter


async def _try_acquire_concurrency_slot(limiter: _ConcurrencyLimiter) -> tuple[bool, int]:
    """Take a slot immediately, or poll for one until the queue timeout.

    Polling only ever takes a slot while this coroutine is running, so a
    request cancelled in the queue holds nothing.
    """

    started = time.perf_counter()
    if limiter.queue_timeout_seconds == 0:
        return limiter.semaphore.acquire(blocking=False), _elapsed_ms(started)

    deadline = time.monotonic() + limiter.queue_timeout_seconds
    while time.monotonic() < deadline:
        if limiter.semaphore.acquire(blocking=False):
            return True, _elapsed_ms(started)
        await asyncio.sleep(_QUEUE_POLL_SECONDS)
    return False, _elapsed_ms(started)


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not isinstance(request_id, str) or not request_id:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id


def _download_name(document_type: str) -> str:
    stem = re.sub(r"[^A-Za-z0-9]+", "_", document_type).strip("_") or "document"
    return f"{stem}.docx"


def _document_type_summaries(registry: DocumentRegistry) -> dict[str, dict[str, Any]]:
    return {
        spec.name: {
            "aliases": list(spec.aliases),
            "group": spec.group,
            "min_entries": spec.min_entries,
            "templates": {str(bucket): name for bucket, name in sorted(spec.templates.items())},
            "member_placeholders": [member.placeholder for member in spec.member_fields],
            "row_capacity": spec.row_capacity,
            "computes_totals": spec.totals is not None,
        }
        for spec in registry.specs
    }


def _package_version() -> str:
    try:
        return importlib.metadata.version("docgen")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _env_text(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    return raw or None


def _env_int(name: str, default: int, *, minimum: int) -> int:
    try:
        parsed = int(os.getenv(name, ""))
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _env_float(name: str, default: float) -> float:
    try:
        parsed = float(os.getenv(name, ""))
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _failure_response(
    request_id: str,
    error: ApiRequestError,
    *,
    stage: str,
    log: bool = True,
) -> JSONResponse:
    if log:
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code=error.error_code,
            status_code=error.status_code,
            failure_stage=stage,
        )
    return JSONResponse(
        status_code=error.status_code,
        headers={REQUEST_ID_HEADER: request_id, **error.headers},
        content={
            "error_code": error.error_code,
            "message": error.message,
            "detail": {**error.detail, "request_id": request_id},
        },
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {"event": event, "request_id": request_id, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")))
