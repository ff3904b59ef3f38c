"""FastAPI application exposing job submission, polling and retrieval."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import functools
import logging
import os
import uuid
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.delivery import ResultDelivery
from ..services.jobs import InMemoryJobStore, JobStore
from ..services.naming import build_upload_name, is_join_code, new_join_code
from ..services.pipeline import JobPipeline, build_pipeline


_DEFAULT_MAX_UPLOAD_BYTES = 200 * 1024 * 1024
try:
    _MAX_UPLOAD_BYTES = int(
        (os.environ.get("LECTURE_TO_SLIDE_MAX_UPLOAD_BYTES") or "").strip() or _DEFAULT_MAX_UPLOAD_BYTES
    )
except ValueError:
    _MAX_UPLOAD_BYTES = _DEFAULT_MAX_UPLOAD_BYTES

_DEFAULT_UPLOAD_CHUNK_SIZE = 1024 * 1024

NOT_FOUND_MESSAGE = "Not found"
NO_PRESENTATION_MESSAGE = "No presentation found for this code."


def get_max_upload_bytes() -> int:
    """Return the configured maximum upload size in bytes (``0`` disables the limit)."""

    return int(_MAX_UPLOAD_BYTES)


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "lecture_to_slide_request_id",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars.

    Background jobs started while handling a request inherit the identifier.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_token = _REQUEST_ID_VAR.set(_new_correlation_id())
        try:
            await self.app(scope, receive, send)
        finally:
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request correlation id into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        request_id = _REQUEST_ID_VAR.get()
        if request_id:
            extra.setdefault("request_id", request_id)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})


class UploadTooLargeError(ValueError):
    """Raised when an uploaded file exceeds :func:`get_max_upload_bytes`."""


def _copy_upload_stream(
    upload: UploadFile,
    target: Path,
    *,
    limit: int,
    chunk_size: int = _DEFAULT_UPLOAD_CHUNK_SIZE,
) -> int:
    """Synchronously copy ``upload`` to ``target`` and return the byte count."""

    source = upload.file
    if hasattr(source, "seek"):
        with contextlib.suppress(OSError, ValueError):
            source.seek(0)
    written = 0
    with target.open("wb") as buffer:
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                break
            written += len(chunk)
            if limit > 0 and written > limit:
                raise UploadTooLargeError(f"Upload exceeds the {limit} byte limit")
            buffer.write(chunk)
    return written


async def _persist_upload_file(upload: UploadFile, target: Path) -> int:
    """Persist an uploaded file to disk without blocking the event loop."""

    loop = asyncio.get_running_loop()
    copy_operation = functools.partial(
        _copy_upload_stream,
        upload,
        target,
        limit=get_max_upload_bytes(),
    )
    try:
        return await loop.run_in_executor(None, copy_operation)
    except BaseException:
        with contextlib.suppress(OSError):
            target.unlink(missing_ok=True)
        raise


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    config: AppConfig,
    *,
    store: Optional[JobStore] = None,
    pipeline: Optional[JobPipeline] = None,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application.

    A custom *pipeline* brings its own store; otherwise the real transcription
    and generation clients are built from *config*.
    """

    delivery = ResultDelivery(config.output_root)
    if pipeline is not None:
        store = pipeline.store
    else:
        store = store if store is not None else InMemoryJobStore()
        pipeline = build_pipeline(config, store, delivery=delivery)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await pipeline.shutdown()

    app = FastAPI(
        title="Lecture to Slide",
        description="Turn recorded lectures into presentations retrievable by join code",
        root_path=root_path or "",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.job_store = store
    app.state.pipeline = pipeline
    app.state.delivery = delivery
    app.state.server = None

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, error: RequestValidationError) -> JSONResponse:
        details = "; ".join(str(item.get("msg", "")) for item in error.errors()) or "Invalid request"
        return _error_response(400, details)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True, "mode": config.generation_mode, "pending": pipeline.pending}

    @app.post("/upload-data")
    async def upload_data(
        audio: Optional[UploadFile] = File(None),
        notes: Optional[str] = Form(None),
        transcript: Optional[str] = Form(None),
    ) -> Response:
        code = new_join_code(store.codes())
        cleaned_notes = (notes or "").strip() or None
        cleaned_transcript = (transcript or "").strip() or None

        audio_path: Optional[Path] = None
        encoding_hint: Optional[str] = None
        if audio is not None:
            encoding_hint = Path(audio.filename or "").suffix or None
            target = config.upload_root / build_upload_name(code, encoding_hint)
            try:
                size = await _persist_upload_file(audio, target)
            except UploadTooLargeError as error:
                LOGGER.warning("Rejected upload for %s: %s", code, error)
                return _error_response(413, str(error))
            except OSError:
                LOGGER.exception("Could not store uploaded audio for %s", code)
                return _error_response(500, "Could not store the uploaded audio")
            finally:
                await audio.close()

            if size == 0:
                target.unlink(missing_ok=True)
                if cleaned_transcript is None:
                    return _error_response(400, "Uploaded audio is empty")
            else:
                audio_path = target

        store.create(code, cleaned_notes)
        pipeline.submit(
            code,
            audio_path=audio_path,
            encoding_hint=encoding_hint,
            notes=cleaned_notes,
            transcript=cleaned_transcript,
        )
        LOGGER.info("Accepted job %s (audio=%s)", code, audio_path is not None)
        return JSONResponse({"joinCode": code})

    @app.get("/status/{code}")
    async def job_status(code: str) -> Response:
        record = store.get(code) if is_join_code(code) else None
        if record is None:
            return _error_response(404, NOT_FOUND_MESSAGE)
        return JSONResponse(record.status_payload())

    @app.get("/fetch-slides/{code}")
    @app.get("/fetch-presentation/{code}")
    async def fetch_presentation(code: str) -> Response:
        artifact = delivery.resolve(store.get(code) if is_join_code(code) else None)
        if artifact is None:
            return _error_response(404, NO_PRESENTATION_MESSAGE)

        if artifact.slide_deck is not None:
            return JSONResponse([slide.model_dump() for slide in artifact.slide_deck.slides])

        if artifact.path is None:
            return _error_response(404, NO_PRESENTATION_MESSAGE)
        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(None, artifact.path.read_bytes)
        except OSError:
            LOGGER.warning("Presentation for %s vanished before it could be read", code)
            return _error_response(404, NO_PRESENTATION_MESSAGE)
        return Response(
            content=content,
            media_type=artifact.media_type,
            headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
        )

    return app


__all__ = ["ContextualLoggerAdapter", "RequestContextMiddleware", "create_app", "get_max_upload_bytes"]
